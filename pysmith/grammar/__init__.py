"""Schema-aware SQL production grammar."""

from pysmith.grammar.base import BuildContext, Production
from pysmith.grammar.factory import StatementFactory, statement_factory

__all__ = ['BuildContext', 'Production', 'StatementFactory', 'statement_factory']
