"""
CodeCollab - Database Models

Import all models to ensure they are registered with SQLAlchemy.
"""

from .download import DownloadEvent

__all__ = [
    "DownloadEvent",
]
