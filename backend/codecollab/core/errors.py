"""
CodeCollab - Error Taxonomy

Exceptions raised by the execution engine and the room transport. Each one is
reported to the owning connection as an error event; none of them closes the
connection.
"""

from typing import Optional


class CodeCollabError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProtocolError(CodeCollabError):
    """Malformed inbound message. The session continues."""


class ExecutionError(CodeCollabError):
    """Base class for errors raised while preparing or running code."""


class UnsupportedLanguage(ExecutionError):
    """Language tag outside the supported set."""

    def __init__(self, language: Optional[str]):
        super().__init__(f"Unsupported language: {language}")
        self.language = language


class MissingEntryPoint(ExecutionError):
    """Source lacks the declaration the runtime needs to start it."""


class CompileFailure(ExecutionError):
    """Toolchain rejected the source. Carries its diagnostics verbatim."""

    def __init__(self, diagnostics: str, exit_code: Optional[int] = None):
        super().__init__(diagnostics)
        self.exit_code = exit_code


class SpawnFailure(ExecutionError):
    """The OS could not start the resolved command."""


class WriteAfterExit(ExecutionError):
    """Input arrived for a process that is no longer running."""


class TransportClosed(CodeCollabError):
    """The client link went away. Triggers cleanup, never reported."""
