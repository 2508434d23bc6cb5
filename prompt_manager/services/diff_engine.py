"""
Prompt Version Diff Engine

Pure comparison of two prompt versions:
- Body: character-level runs tagged equal/insert/delete, base -> target
- variables_schema and metadata: key-level added/removed/modified changes

No database access. The same inputs always produce the same output.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from diff_match_patch import diff_match_patch

from prompt_manager.models.prompt_version import PromptVersion


SEGMENT_EQUAL = "equal"
SEGMENT_INSERT = "insert"
SEGMENT_DELETE = "delete"

_DMP_OPERATIONS = {
    diff_match_patch.DIFF_EQUAL: SEGMENT_EQUAL,
    diff_match_patch.DIFF_INSERT: SEGMENT_INSERT,
    diff_match_patch.DIFF_DELETE: SEGMENT_DELETE,
}

CHANGE_ADDED = "added"
CHANGE_REMOVED = "removed"
CHANGE_MODIFIED = "modified"


@dataclass
class DiffSegment:
    type: str  # equal, insert, delete
    text: str


@dataclass
class FieldChange:
    """
    One differing key of a JSON side-field.

    Values are canonical strings; base_value is None for added keys and
    target_value is None for removed keys.
    """
    key: str
    change: str  # added, removed, modified
    base_value: Optional[str] = None
    target_value: Optional[str] = None


@dataclass
class FieldDiff:
    changes: List[FieldChange] = field(default_factory=list)


@dataclass
class VersionSummary:
    id: str
    version_number: int
    created_by: Optional[str]
    created_at: Optional[datetime]
    status: str

    @classmethod
    def from_version(cls, version: PromptVersion) -> "VersionSummary":
        return cls(
            id=version.id,
            version_number=version.version_number,
            created_by=version.created_by,
            created_at=version.created_at,
            status=version.status,
        )


@dataclass
class VersionDiff:
    """
    Result of comparing a base version with its resolved target.

    variables_schema / metadata are None when the field did not change;
    callers treat None and an empty change list the same way.
    """
    prompt_id: str
    base: VersionSummary
    target: VersionSummary
    body: List[DiffSegment] = field(default_factory=list)
    variables_schema: Optional[FieldDiff] = None
    metadata: Optional[FieldDiff] = None

    @property
    def has_changes(self) -> bool:
        if self.variables_schema or self.metadata:
            return True
        return any(segment.type != SEGMENT_EQUAL for segment in self.body)


def _coalesce(runs: List[tuple]) -> List[DiffSegment]:
    """
    Merge raw runs into the fewest segments.

    Between two equal segments there is at most one delete followed by at
    most one insert; empty runs are dropped.
    """
    segments: List[DiffSegment] = []
    deleted: List[str] = []
    inserted: List[str] = []

    def flush_edits():
        if deleted:
            segments.append(DiffSegment(SEGMENT_DELETE, "".join(deleted)))
            deleted.clear()
        if inserted:
            segments.append(DiffSegment(SEGMENT_INSERT, "".join(inserted)))
            inserted.clear()

    for kind, text in runs:
        if not text:
            continue
        if kind == SEGMENT_DELETE:
            deleted.append(text)
        elif kind == SEGMENT_INSERT:
            inserted.append(text)
        else:
            flush_edits()
            if segments and segments[-1].type == SEGMENT_EQUAL:
                segments[-1].text += text
            else:
                segments.append(DiffSegment(SEGMENT_EQUAL, text))

    flush_edits()
    return segments


def diff_text(base: Optional[str], target: Optional[str]) -> List[DiffSegment]:
    """
    Character-level minimal diff from base to target.

    Myers alignment via diff-match-patch with no time limit, so the equal
    runs always cover a longest common subsequence of the two bodies:

        diff_text("Hello {{name}}", "Hello there {{name}}")
        # [equal("Hello "), insert("there "), equal("{{name}}")]

    Args:
        base: Body of the base version
        target: Body of the version compared against

    Returns:
        Segments in document order; insert = only in target, delete = only in base
    """
    dmp = diff_match_patch()
    # No deadline and no half-match shortcut; either may return a non-minimal diff
    dmp.Diff_Timeout = 0

    runs = [
        (_DMP_OPERATIONS[operation], text)
        for operation, text in dmp.diff_main(base or "", target or "", False)
    ]
    return _coalesce(runs)


def _as_flat_map(value: Any) -> Dict[str, Any]:
    """Missing, unparseable or non-object input is an empty map."""
    if value is None:
        return {}
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        if not value.strip():
            return {}
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    if isinstance(value, Mapping):
        return {str(key): item for key, item in value.items()}
    return {}


def canonical_value(value: Any) -> str:
    """Strings as-is, everything else as compact JSON with sorted keys."""
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def diff_fields(base: Any, target: Any) -> Optional[FieldDiff]:
    """
    Key-level diff of two flat JSON objects.

    Example:
        diff_fields({"a": 1, "b": 2}, {"b": 3, "c": 4})
        # a removed ("1"), b modified ("2" -> "3"), c added ("4")

    Returns:
        FieldDiff with changes sorted by key, or None when nothing differs
    """
    base_map = _as_flat_map(base)
    target_map = _as_flat_map(target)

    changes: List[FieldChange] = []
    for key in sorted(set(base_map) | set(target_map)):
        in_base = key in base_map
        in_target = key in target_map

        if in_base and not in_target:
            changes.append(FieldChange(key, CHANGE_REMOVED, base_value=canonical_value(base_map[key])))
        elif in_target and not in_base:
            changes.append(FieldChange(key, CHANGE_ADDED, target_value=canonical_value(target_map[key])))
        else:
            base_value = canonical_value(base_map[key])
            target_value = canonical_value(target_map[key])
            if base_value != target_value:
                changes.append(FieldChange(key, CHANGE_MODIFIED, base_value, target_value))

    if not changes:
        return None
    return FieldDiff(changes=changes)


def build_version_diff(base: PromptVersion, target: PromptVersion) -> VersionDiff:
    """Compare two versions of the same prompt."""
    return VersionDiff(
        prompt_id=base.prompt_id,
        base=VersionSummary.from_version(base),
        target=VersionSummary.from_version(target),
        body=diff_text(base.body, target.body),
        variables_schema=diff_fields(base.variables_schema, target.variables_schema),
        metadata=diff_fields(base.metadata_, target.metadata_),
    )
