"""
CodeCollab - Collaborative Code Runner Backend

Shared editing rooms with live, interactive code execution.
"""

__version__ = "1.0.0"
