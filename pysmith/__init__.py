"""
PySmith - Python Random SQL Generator

Schema-aware random SQL generation for stress-testing SQL engines.
"""

__version__ = "1.0.0"

from pysmith.core.errors import (
    BrokenSession, EngineError, LogSinkError, NoCandidateError, SchemaLoadError, StatementFailure,
)
from pysmith.core.schema import Column, Routine, RoutineKind, Schema, Table
from pysmith.core.scope import Scope
from pysmith.core.types import SqlType
from pysmith.grammar import BuildContext, StatementFactory, statement_factory
from pysmith.loop import RunConfig, RunLoop

__all__ = [
    'BrokenSession', 'EngineError', 'LogSinkError', 'NoCandidateError', 'SchemaLoadError',
    'StatementFailure',
    'Column', 'Routine', 'RoutineKind', 'Schema', 'Table', 'Scope', 'SqlType',
    'BuildContext', 'StatementFactory', 'statement_factory', 'RunConfig', 'RunLoop',
]
