"""Tests for JSON helpers used on TEXT columns and json_* aggregates."""

from branchreel.models import NodeInfo
from branchreel.utils.json import model_json_or_none, parse_json_field, parse_json_list


class TestParseJsonField:
    """parse_json_field: strict dict parser for nodes.info."""

    def test_from_json_string(self):
        assert parse_json_field('{"key": "value"}') == {"key": "value"}

    def test_from_dict(self):
        assert parse_json_field({"key": "value"}) == {"key": "value"}

    def test_none_returns_none(self):
        assert parse_json_field(None) is None

    def test_empty_dict_returns_none(self):
        assert parse_json_field({}) is None

    def test_invalid_json_returns_none(self):
        assert parse_json_field("not json") is None

    def test_json_list_returns_none(self):
        assert parse_json_field("[1, 2, 3]") is None


class TestParseJsonList:
    """parse_json_list: arrays built by json_group_array."""

    def test_from_json_string(self):
        assert parse_json_list('["a", "b"]') == ["a", "b"]

    def test_list_passthrough(self):
        lst = [1, 2]
        assert parse_json_list(lst) is lst

    def test_none_returns_empty(self):
        assert parse_json_list(None) == []

    def test_invalid_json_returns_empty(self):
        assert parse_json_list("not json") == []

    def test_json_object_returns_empty(self):
        assert parse_json_list('{"a": 1}') == []


class TestModelJsonOrNone:
    def test_none(self):
        assert model_json_or_none(None) is None

    def test_model_serializes(self):
        raw = model_json_or_none(NodeInfo(name="intro", duration=3))
        assert parse_json_field(raw)["name"] == "intro"
