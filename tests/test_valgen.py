"""Tests for literal generation."""

import random
import re

import pytest

from pysmith.core.types import SqlType
from pysmith.core.valgen import ValueGenerator, quote_literal


@pytest.fixture
def gen():
    return ValueGenerator(random.Random(42))


class TestQuoteLiteral:

    def test_plain(self):
        assert quote_literal('abc') == "'abc'"

    def test_embedded_quote_is_doubled(self):
        assert quote_literal("it's") == "'it''s'"

    def test_empty(self):
        assert quote_literal('') == "''"


class TestValueGenerator:

    def test_numeric_literals(self, gen):
        for _ in range(200):
            value = gen.generate(SqlType.NUMERIC, allow_null=False)
            assert re.fullmatch(r'-?\d+(\.\d{3})?', value), value

    def test_text_literals_are_quoted(self, gen):
        for _ in range(200):
            value = gen.generate(SqlType.TEXT, allow_null=False)
            assert value.startswith("'") and value.endswith("'")
            assert "'" not in value[1:-1].replace("''", "")

    def test_boolean_literals(self, gen):
        values = {gen.generate(SqlType.BOOLEAN, allow_null=False) for _ in range(50)}
        assert values == {'TRUE', 'FALSE'}

    def test_datetime_literals(self, gen):
        value = gen.generate(SqlType.DATETIME, allow_null=False)
        assert re.fullmatch(r"CAST\('\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}' AS TIMESTAMP\)", value)

    def test_unknown_type_is_null(self, gen):
        assert gen.generate(SqlType.UNKNOWN) == 'NULL'

    def test_nulls_can_be_disabled(self):
        gen = ValueGenerator(random.Random(0), null_probability=1.0)
        assert gen.generate(SqlType.NUMERIC) == 'NULL'
        assert gen.generate(SqlType.NUMERIC, allow_null=False) != 'NULL'

    def test_deterministic_for_seed(self):
        a = ValueGenerator(random.Random(7))
        b = ValueGenerator(random.Random(7))
        types = [SqlType.NUMERIC, SqlType.TEXT, SqlType.DATETIME, SqlType.BOOLEAN] * 10
        assert [a.generate(t) for t in types] == [b.generate(t) for t in types]
