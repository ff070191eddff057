"""
Exception hierarchy for PySmith.

Engine failures carry a two-level taxonomy: statement-level failures leave the
session usable, ``BrokenSession`` means the session must be recreated.
"""

from typing import Optional


class PySmithError(Exception):
    """Base class for all PySmith errors."""


class SchemaLoadError(PySmithError):
    """Introspection could not produce a usable schema."""


class NoCandidateError(PySmithError):
    """No visible binding or routine satisfies a construction constraint."""


class LogSinkError(PySmithError):
    """The database error log could not be opened."""


class EngineError(PySmithError):
    """An error reported by the engine under test."""

    symbol = "e"

    def __init__(self, message: str, sql: Optional[str] = None,
                 elapsed: float = 0.0, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.sql = sql
        self.elapsed = elapsed
        self.code = code

    @property
    def kind(self) -> str:
        return type(self).__name__


class StatementFailure(EngineError):
    """The statement was rejected; the session is still usable."""


class SyntaxFailure(StatementFailure):
    symbol = "S"


class TimeoutFailure(StatementFailure):
    symbol = "t"


class BrokenSession(EngineError):
    """The session is no longer usable and must be torn down."""

    symbol = "C"
