"""
Unit tests for view query parameter encoding.
"""

import json
from urllib.parse import parse_qs

import pytest

from couchdb_client.errors import EncodingError
from couchdb_client.params import (
    QueryParameters,
    encode_query,
    quote_key,
    quote_value,
)


class TestQuoteKey:
    """Test the JSON-literal heuristic for key, startkey and endkey."""

    def test_plain_string_is_quoted(self):
        assert quote_key("foo1") == '"foo1"'

    def test_pre_quoted_string_passes_through(self):
        assert quote_key('"foo1"') == '"foo1"'

    def test_composite_literal_passes_through(self):
        assert quote_key('["foo2",20]') == '["foo2",20]'

    def test_comma_separated_components_become_array(self):
        """Numeric components stay unquoted, the rest are quoted."""
        assert quote_key("foo2,20") == '["foo2",20]'
        assert quote_key("foo2,beep2") == '["foo2","beep2"]'

    def test_number_is_unquoted(self):
        assert quote_key("42") == "42"
        assert quote_key("3.5") == "3.5"

    def test_numeric_looking_string_is_sent_as_number(self):
        """Known limitation: "2020" cannot be told apart from 2020."""
        assert quote_key("2020") == "2020"

    def test_string_with_quote_is_escaped(self):
        assert json.loads(quote_key('say "hi"')) == 'say "hi"'

    @pytest.mark.parametrize("value", ["1_000", "nan", "inf", "+5", ".5", " 7", "7 ", "NaN", "Infinity", "-Infinity"])
    def test_non_json_numbers_are_quoted(self, value):
        """Only the JSON number grammar is sent unquoted."""
        assert quote_value("key", value) == json.dumps(value)

    def test_non_json_number_in_composite_key(self):
        assert quote_value("startkey", "foo,1_000") == '["foo","1_000"]'
        assert quote_value("endkey", "foo,-1.5e3") == '["foo",-1.5e3]'

    @pytest.mark.parametrize("value", ["1_000", "nan", "inf", "+5", ".5", "NaN", "Infinity", "foo,1_000"])
    def test_quoted_keys_are_strict_json(self, value):
        def reject(constant):
            raise ValueError(constant)

        json.loads(quote_value("key", value), parse_constant=reject)


class TestQuoteValue:
    """Test quoting of individual parameters."""

    def test_structured_key_values_are_serialized(self):
        assert quote_value("key", ["foo2", 20]) == '["foo2",20]'
        assert quote_value("startkey", 10) == "10"
        assert quote_value("endkey", {"a": 1}) == '{"a":1}'

    def test_booleans(self):
        assert quote_value("descending", True) == "true"
        assert quote_value("reduce", False) == "false"
        assert quote_value("key", True) == "true"

    def test_nan_value_rejected(self):
        with pytest.raises(EncodingError):
            quote_value("key", float("nan"))
        with pytest.raises(EncodingError):
            quote_value("limit", float("inf"))

    def test_integers_are_unquoted(self):
        assert quote_value("limit", 10) == "10"
        assert quote_value("skip", 0) == "0"

    def test_true_false_strings_pass_through(self):
        assert quote_value("include_docs", "true") == "true"
        assert quote_value("include_docs", "false") == "false"

    def test_plain_string_parameters_are_raw(self):
        assert quote_value("stale", "ok") == "ok"
        assert quote_value("startkey_docid", "doc-1") == "doc-1"
        assert quote_value("endkey_docid", "doc-9") == "doc-9"


class TestQueryParameters:
    """Test QueryParameters encoding."""

    def test_empty_parameters_encode_to_nothing(self):
        assert QueryParameters().to_query() == {}
        assert encode_query(QueryParameters()) == ""
        assert encode_query(None) == ""

    def test_key_is_quoted_in_query_string(self):
        query = encode_query(QueryParameters(key="foo1"))
        assert query == "key=%22foo1%22"

    def test_composite_key_in_query_string(self):
        query = encode_query(QueryParameters(key='["foo2",20]'))
        assert parse_qs(query) == {"key": ['["foo2",20]']}

    def test_only_set_fields_are_sent(self):
        params = QueryParameters(startkey="a", endkey="b", limit=5, reduce=False)
        assert params.to_query() == {
            "endkey": '"b"',
            "limit": "5",
            "reduce": "false",
            "startkey": '"a"',
        }

    def test_explicit_false_is_sent(self):
        assert QueryParameters(group=False).to_query() == {"group": "false"}

    def test_group_level(self):
        params = QueryParameters(key="female", group_level=1)
        assert parse_qs(encode_query(params)) == {"key": ['"female"'], "group_level": ["1"]}

    def test_defaults_preset(self):
        """The preset disables reduce and keeps inclusive_end on."""
        query = QueryParameters.defaults().to_query()
        assert query["reduce"] == "false"
        assert query["inclusive_end"] == "true"
        assert query["skip"] == "0"
        assert query["include_docs"] == "false"
        assert "key" not in query
        assert "limit" not in query

    def test_each_preset_is_independent(self):
        """Changing one preset never leaks into the next caller's."""
        first = QueryParameters.defaults()
        first.key = "leak"
        first.reduce = True
        second = QueryParameters.defaults()
        assert second.key is None
        assert second.reduce is False

    def test_custom_quote_callable(self):
        """The quoting heuristic can be replaced."""
        params = QueryParameters(key="2020", limit=1)
        query = params.to_query(lambda name, value: json.dumps(value))
        assert query == {"key": '"2020"', "limit": "1"}

    @pytest.mark.parametrize("value,expected", [
        ("foo1", '"foo1"'),
        ("10", "10"),
        ('["foo2","beep2"]', '["foo2","beep2"]'),
    ])
    def test_startkey_values(self, value, expected):
        assert QueryParameters(startkey=value).to_query() == {"startkey": expected}
