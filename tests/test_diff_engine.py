"""
Tests for the prompt version diff engine

Tests cover:
- Character-level body segments (equal/insert/delete)
- Minimal alignment (equal text is a longest common subsequence)
- Key-level variables_schema / metadata changes
- Tolerance of missing or unparseable JSON side-fields
"""

import random
from unittest.mock import Mock

from prompt_manager.services.diff_engine import (
    DiffSegment,
    FieldChange,
    diff_text,
    diff_fields,
    canonical_value,
    build_version_diff,
    SEGMENT_EQUAL,
    SEGMENT_INSERT,
    SEGMENT_DELETE,
    CHANGE_ADDED,
    CHANGE_REMOVED,
    CHANGE_MODIFIED,
)


def _rebuild(segments, side):
    """Concatenate the segments visible on one side of the diff."""
    skip = SEGMENT_INSERT if side == "base" else SEGMENT_DELETE
    return "".join(s.text for s in segments if s.type != skip)


def _lcs_length(a, b):
    previous = [0] * (len(b) + 1)
    for char_a in a:
        current = [0]
        for j, char_b in enumerate(b):
            if char_a == char_b:
                current.append(previous[j] + 1)
            else:
                current.append(max(previous[j + 1], current[j]))
        previous = current
    return previous[-1]


def _equal_length(segments):
    return sum(len(s.text) for s in segments if s.type == SEGMENT_EQUAL)


class TestDiffText:
    """Body diffs from base to target."""

    def test_insertion_between_common_prefix_and_suffix(self):
        segments = diff_text("Hello {{name}}", "Hello there {{name}}")

        assert segments == [
            DiffSegment(SEGMENT_EQUAL, "Hello "),
            DiffSegment(SEGMENT_INSERT, "there "),
            DiffSegment(SEGMENT_EQUAL, "{{name}}"),
        ]

    def test_identical_bodies_yield_single_equal_segment(self):
        segments = diff_text("Summarize {{ticket}}", "Summarize {{ticket}}")

        assert segments == [DiffSegment(SEGMENT_EQUAL, "Summarize {{ticket}}")]

    def test_empty_bodies_yield_no_segments(self):
        assert diff_text("", "") == []
        assert diff_text(None, None) == []

    def test_replacement_is_one_delete_then_one_insert(self):
        segments = diff_text("The cat sat", "The dog sat")

        assert segments == [
            DiffSegment(SEGMENT_EQUAL, "The "),
            DiffSegment(SEGMENT_DELETE, "cat"),
            DiffSegment(SEGMENT_INSERT, "dog"),
            DiffSegment(SEGMENT_EQUAL, " sat"),
        ]

    def test_deletion_only(self):
        segments = diff_text("Hello dear {{name}}", "Hello {{name}}")

        assert [s.type for s in segments] == [SEGMENT_EQUAL, SEGMENT_DELETE, SEGMENT_EQUAL]
        assert _rebuild(segments, "base") == "Hello dear {{name}}"
        assert _rebuild(segments, "target") == "Hello {{name}}"

    def test_segments_reconstruct_both_sides(self):
        base = "You are a helpful assistant.\nAnswer in {{language}}."
        target = "You are a concise assistant.\nAlways answer in {{language}}!"

        segments = diff_text(base, target)

        assert _rebuild(segments, "base") == base
        assert _rebuild(segments, "target") == target
        assert all(s.text for s in segments)

    def test_no_adjacent_segments_of_same_type(self):
        segments = diff_text("abcdefgh", "axcyefzh")

        for left, right in zip(segments, segments[1:]):
            assert left.type != right.type

    def test_from_empty_base_is_pure_insert(self):
        assert diff_text("", "new body") == [DiffSegment(SEGMENT_INSERT, "new body")]


class TestMinimalAlignment:
    """Equal runs must cover a longest common subsequence of both bodies."""

    def test_scattered_matches_are_all_kept(self):
        segments = diff_text("a  a", "ccb ab aabc")

        assert _equal_length(segments) == _lcs_length("a  a", "ccb ab aabc") == 3
        assert _rebuild(segments, "base") == "a  a"
        assert _rebuild(segments, "target") == "ccb ab aabc"

    def test_random_small_alphabet_bodies(self):
        rng = random.Random(20261019)

        for _ in range(500):
            base = "".join(rng.choice("abc ") for _ in range(rng.randint(0, 12)))
            target = "".join(rng.choice("abc ") for _ in range(rng.randint(0, 12)))

            segments = diff_text(base, target)

            assert _equal_length(segments) == _lcs_length(base, target), (base, target)
            assert _rebuild(segments, "base") == base
            assert _rebuild(segments, "target") == target


class TestDiffFields:
    """Key-level diffs of flat JSON objects."""

    def test_added_removed_and_modified_keys(self):
        diff = diff_fields({"a": 1, "b": 2}, {"b": 3, "c": 4})

        assert diff.changes == [
            FieldChange("a", CHANGE_REMOVED, base_value="1"),
            FieldChange("b", CHANGE_MODIFIED, base_value="2", target_value="3"),
            FieldChange("c", CHANGE_ADDED, target_value="4"),
        ]

    def test_equal_objects_return_none(self):
        assert diff_fields({"name": "string"}, {"name": "string"}) is None

    def test_both_missing_return_none(self):
        assert diff_fields(None, None) is None

    def test_unparseable_side_counts_as_empty(self):
        diff = diff_fields("{not json", {"x": 1})

        assert diff.changes == [FieldChange("x", CHANGE_ADDED, target_value="1")]

    def test_json_strings_are_parsed(self):
        diff = diff_fields('{"temperature": 0.1}', '{"temperature": 0.2}')

        assert diff.changes == [
            FieldChange("temperature", CHANGE_MODIFIED, base_value="0.1", target_value="0.2")
        ]

    def test_non_object_json_counts_as_empty(self):
        assert diff_fields([1, 2, 3], {}) is None

    def test_nested_values_compare_canonically(self):
        assert diff_fields({"a": {"y": 1, "x": 2}}, {"a": {"x": 2, "y": 1}}) is None

    def test_changes_sorted_by_key(self):
        diff = diff_fields({}, {"zeta": 1, "alpha": 2, "mid": 3})

        assert [c.key for c in diff.changes] == ["alpha", "mid", "zeta"]


class TestCanonicalValue:

    def test_strings_pass_through(self):
        assert canonical_value("plain") == "plain"

    def test_objects_render_as_sorted_compact_json(self):
        assert canonical_value({"b": [1, 2], "a": None}) == '{"a":null,"b":[1,2]}'


class TestBuildVersionDiff:

    def _version(self, **kwargs):
        version = Mock()
        version.id = kwargs.get("id", "v")
        version.prompt_id = "p1"
        version.version_number = kwargs.get("version_number", 1)
        version.body = kwargs.get("body", "")
        version.variables_schema = kwargs.get("variables_schema")
        version.metadata_ = kwargs.get("metadata")
        version.created_by = "admin@example.com"
        version.created_at = None
        version.status = "draft"
        return version

    def test_self_diff_has_no_changes(self):
        version = self._version(body="Hello {{name}}", variables_schema={"name": "string"})

        diff = build_version_diff(version, version)

        assert diff.has_changes is False
        assert diff.body == [DiffSegment(SEGMENT_EQUAL, "Hello {{name}}")]
        assert diff.variables_schema is None
        assert diff.metadata is None

    def test_summaries_and_field_diffs(self):
        base = self._version(id="v2", version_number=2, body="Hi", metadata={"model": "a"})
        target = self._version(id="v1", version_number=1, body="Hi", metadata={"model": "b"})

        diff = build_version_diff(base, target)

        assert diff.prompt_id == "p1"
        assert diff.base.id == "v2"
        assert diff.target.version_number == 1
        assert diff.metadata.changes == [
            FieldChange("model", CHANGE_MODIFIED, base_value="a", target_value="b")
        ]
        assert diff.has_changes is True
