"""Tests for JSON extraction helpers."""

from __future__ import annotations

from taskcli.utils.json_utils import extract_json_object, fix_trailing_commas


class TestExtractJsonObject:
    def test_plain_object(self) -> None:
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_block(self) -> None:
        text = 'Sure!\n```json\n{"tasks": []}\n```\nAnything else?'
        assert extract_json_object(text) == {"tasks": []}

    def test_object_inside_prose(self) -> None:
        text = 'The answer is {"status": "error", "summary": "a } in a string"} as requested.'
        assert extract_json_object(text) == {"status": "error", "summary": "a } in a string"}

    def test_trailing_commas(self) -> None:
        assert extract_json_object('{"a": [1, 2,],}') == {"a": [1, 2]}

    def test_arrays_are_not_objects(self) -> None:
        assert extract_json_object("[1, 2, 3]") is None

    def test_nothing_found(self) -> None:
        assert extract_json_object("no json here") is None


def test_fix_trailing_commas() -> None:
    assert fix_trailing_commas('{"a": 1, }') == '{"a": 1}'
