"""
tests/unit/test_key_path.py

Unit tests for key-path extraction.

Verifies:
✔ Dotted and bracketed segments are split correctly
✔ Nested objects and arrays are walked
✔ Any miss returns the supplied default
✔ Non-container roots return the default
✔ Repeated calls are deterministic
"""

import pytest

from model_invocation.key_path import get_key_path, split_key_path


class TestSplitKeyPath:
    def test_dots_and_brackets(self):
        assert split_key_path("choices[0].text") == ["choices", "0", "text"]

    def test_consecutive_brackets(self):
        assert split_key_path("data.outputs[0][1]") == ["data", "outputs", "0", "1"]

    def test_surrounding_whitespace_and_empty_segments(self):
        assert split_key_path("  a..b.  ") == ["a", "b"]

    def test_empty_path(self):
        assert split_key_path("") == []


class TestGetKeyPath:
    DOC = {
        "choices": [{"text": "hello"}, {"text": "second"}],
        "meta": {"tokens": 12, "done": False, "empty": ""},
        "nothing": None,
    }

    def test_openai_style_path(self):
        assert get_key_path(self.DOC, "choices[0].text") == "hello"

    def test_second_index(self):
        assert get_key_path(self.DOC, "choices[1].text") == "second"

    def test_nested_object(self):
        assert get_key_path(self.DOC, "meta.tokens") == 12

    def test_falsy_leaf_values_are_returned(self):
        assert get_key_path(self.DOC, "meta.done", "x") is False
        assert get_key_path(self.DOC, "meta.empty", "x") == ""

    def test_missing_key_returns_default(self):
        assert get_key_path(self.DOC, "meta.missing", "default") == "default"

    def test_empty_array_returns_default(self):
        assert get_key_path({"choices": []}, "choices[0].text", "default") == "default"

    def test_index_on_object_returns_default(self):
        assert get_key_path(self.DOC, "meta[0]", "d") == "d"

    def test_non_numeric_index_on_array_returns_default(self):
        assert get_key_path(self.DOC, "choices.first", "d") == "d"

    def test_null_intermediate_returns_default(self):
        assert get_key_path(self.DOC, "nothing.text", "d") == "d"

    def test_walk_through_scalar_returns_default(self):
        assert get_key_path(self.DOC, "meta.tokens.value", "d") == "d"

    @pytest.mark.parametrize("root", ["text", 3, None, True])
    def test_non_container_root_returns_default(self, root):
        assert get_key_path(root, "text", "d") == "d"

    def test_empty_path_returns_root(self):
        assert get_key_path(self.DOC, "") is self.DOC

    def test_default_is_none_when_not_given(self):
        assert get_key_path({}, "a.b") is None

    def test_deterministic(self):
        first = get_key_path(self.DOC, "choices[0].text")
        second = get_key_path(self.DOC, "choices[0].text")
        assert first == second == "hello"

    def test_malformed_bracket_never_raises(self):
        assert get_key_path(self.DOC, "choices[0.text", "d") == "d"
