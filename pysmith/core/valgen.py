"""
Value Generation Strategy.
"""
import random

from pysmith.core.types import SqlType

_TEXT_CHARS = 'abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789 %_\''


def quote_literal(text: str) -> str:
    """Render ``text`` as a single-quoted SQL string literal."""
    return "'" + text.replace("'", "''") + "'"


class ValueGenerator:
    """Generates random SQL literal values for given types."""

    def __init__(self, rng: random.Random, null_probability: float = 0.05):
        self.rng = rng
        self.null_probability = null_probability

    def _generate_numeric(self) -> str:
        roll = self.rng.random()
        if roll < 0.6:
            return str(self.rng.randint(-1000, 1000))
        if roll < 0.8:
            return self.rng.choice(['0', '1', '-1', '2147483647', '-2147483648'])
        whole = self.rng.randint(-10000, 10000)
        frac = self.rng.randint(0, 999)
        return f"{whole}.{frac:03d}"

    def _generate_text(self) -> str:
        length = self.rng.randint(0, 12)
        return quote_literal(''.join(self.rng.choice(_TEXT_CHARS) for _ in range(length)))

    def _generate_datetime(self) -> str:
        year = self.rng.randint(1970, 2030)
        month = self.rng.randint(1, 12)
        day = self.rng.randint(1, 28)
        hour = self.rng.randint(0, 23)
        minute = self.rng.randint(0, 59)
        second = self.rng.randint(0, 59)
        return (f"CAST('{year:04d}-{month:02d}-{day:02d} "
                f"{hour:02d}:{minute:02d}:{second:02d}' AS TIMESTAMP)")

    def generate(self, sql_type: SqlType, allow_null: bool = True) -> str:
        """Generate a literal of the given type."""
        if allow_null and self.rng.random() < self.null_probability:
            return "NULL"

        if sql_type is SqlType.BOOLEAN:
            return self.rng.choice(['TRUE', 'FALSE'])
        if sql_type is SqlType.NUMERIC:
            return self._generate_numeric()
        if sql_type is SqlType.TEXT:
            return self._generate_text()
        if sql_type is SqlType.DATETIME:
            return self._generate_datetime()
        if sql_type is SqlType.BINARY:
            return "CAST(NULL AS BYTEA)"

        # Unknown types only ever accept NULL safely
        return "NULL"
