import pytest

from startracker.keys import PLACEHOLDER_KEY, make_key, uniquify


class TestMakeKey:
    """Tests for deriving keys from labels."""

    @pytest.mark.parametrize(
        "label, expected",
        [
            ("Helped with dishes", "Helped_with_dishes"),
            ("Tidy room!!", "Tidy_room"),
            ("Read 2 books", "Read_2_books"),
            ("snake_case-label", "snakecaselabel"),
            ("Café time", "Caf_time"),
        ],
    )
    def test_ascii_filtering(self, label, expected):
        """Test ascii filtering."""
        assert make_key(label) == expected

    def test_case_is_preserved(self):
        """Test case is preserved."""
        assert make_key("MiXeD") == "MiXeD"

    @pytest.mark.parametrize("label", ["", "!!!", "帮忙洗碗", "整理房間"])
    def test_empty_result_uses_placeholder(self, label):
        """Test empty result uses placeholder."""
        assert make_key(label) == PLACEHOLDER_KEY == "custom"


class TestUniquify:
    """Tests for resolving key collisions."""

    def test_free_key_is_kept(self):
        """Test free key is kept."""
        assert uniquify("dishes", {"tidy"}) == "dishes"

    def test_suffix_starts_at_two(self):
        """Test suffix starts at two."""
        assert uniquify("dishes", {"dishes"}) == "dishes_2"

    def test_suffix_skips_taken_values(self):
        """Test suffix skips taken values."""
        assert uniquify("custom", {"custom", "custom_2", "custom_3"}) == "custom_4"

    def test_accepts_predicate(self):
        """Test accepts predicate."""
        taken = {"a", "a_2"}
        assert uniquify("a", lambda key: key in taken) == "a_3"
