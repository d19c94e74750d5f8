"""Modifier tag codec.

A case persists its boolean flags and its namespaced selectors as one flat
list of string tags. The functions here are the only place that list is read
or written; everything above works with :class:`ModifierSet`.

Tag namespaces:
- plain flags: ``rush``, ``hold``, ``bbs``, ``flex``, ``stage2``
- stage marker: ``stage-<stage>`` (at most one)
- exclusion marker: ``stats-exclude``, ``stats-exclude:all``,
  ``stats-exclude:<stage>`` (at most one)
- exclusion reason: ``stats-exclude-reason:<text>`` (only with an exclusion)
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from board_sync.models.case import Stage

RUSH = "rush"
HOLD = "hold"
BBS = "bbs"
FLEX = "flex"
STAGE2 = "stage2"

PLAIN_FLAGS: Tuple[str, ...] = (RUSH, HOLD, BBS, FLEX, STAGE2)

STAGE_PREFIX = "stage-"
EXCLUSION_PREFIX = "stats-exclude:"
EXCLUSION_REASON_PREFIX = "stats-exclude-reason:"

EXCLUDE_ALL = "all"

Tags = Tuple[str, ...]


def _normalize(tags: Iterable[str]) -> Tags:
    """Return tags as a tuple with duplicates dropped, first occurrence kept."""
    seen = set()
    result = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return tuple(result)


LEGACY_EXCLUSION = EXCLUSION_PREFIX.rstrip(":")


def _in_namespace(tag: str, prefix: str) -> bool:
    # Only the exclusion namespace has a bare legacy form
    if prefix == EXCLUSION_PREFIX and tag == LEGACY_EXCLUSION:
        return True
    return tag.startswith(prefix)


def has_flag(tags: Iterable[str], name: str) -> bool:
    """True iff ``name`` is a member of ``tags``."""
    return name in tuple(tags)


def with_flag(tags: Iterable[str], name: str, present: bool) -> Tags:
    """Add or remove a plain flag, leaving every other tag untouched."""
    current = _normalize(tags)
    if (name in current) == present:
        return current
    if present:
        return current + (name,)
    return tuple(t for t in current if t != name)


def get_namespaced(tags: Iterable[str], prefix: str) -> Optional[str]:
    """Return the suffix of the tag in ``prefix``'s namespace, or None.

    The bare prefix form decodes to an empty suffix.
    """
    for tag in tags:
        if _in_namespace(tag, prefix):
            return tag[len(prefix):] if tag.startswith(prefix) else ""
    return None


def set_namespaced(tags: Iterable[str], prefix: str, value: Optional[str]) -> Tags:
    """Replace whatever occupies ``prefix``'s namespace with ``prefix + value``.

    Passing ``None`` clears the namespace.
    """
    remaining = tuple(t for t in _normalize(tags) if not _in_namespace(t, prefix))
    if value is None:
        return remaining
    return remaining + (f"{prefix}{value}",)


def _is_known(tag: str) -> bool:
    return (
        tag in PLAIN_FLAGS
        or _in_namespace(tag, EXCLUSION_REASON_PREFIX)
        or _in_namespace(tag, EXCLUSION_PREFIX)
        or (tag.startswith(STAGE_PREFIX) and tag[len(STAGE_PREFIX):] in Stage.values())
    )


@dataclass(frozen=True)
class ModifierSet:
    """Structured view of a case's modifier tags."""

    rush: bool = False
    hold: bool = False
    bbs: bool = False
    flex: bool = False
    stage2: bool = False
    stage: Optional[Stage] = None
    exclusion: Optional[str] = None
    exclusion_reason: Optional[str] = None
    extra: Tags = field(default_factory=tuple)

    @classmethod
    def from_tags(cls, tags: Iterable[str]) -> "ModifierSet":
        tags = _normalize(tags or ())

        stage_value = get_namespaced(tags, STAGE_PREFIX)
        stage = Stage(stage_value) if stage_value in Stage.values() else None

        exclusion = get_namespaced(tags, EXCLUSION_PREFIX)
        if exclusion == "":
            exclusion = EXCLUDE_ALL
        reason = get_namespaced(tags, EXCLUSION_REASON_PREFIX) if exclusion else None

        return cls(
            rush=has_flag(tags, RUSH),
            hold=has_flag(tags, HOLD),
            bbs=has_flag(tags, BBS),
            flex=has_flag(tags, FLEX),
            stage2=has_flag(tags, STAGE2),
            stage=stage,
            exclusion=exclusion,
            exclusion_reason=reason or None,
            extra=tuple(t for t in tags if not _is_known(t)),
        )

    def to_tags(self) -> Tags:
        tags: Tags = tuple(self.extra)
        for name in PLAIN_FLAGS:
            tags = with_flag(tags, name, getattr(self, name))
        # An unrecognised stage marker survives in extra until a real stage replaces it
        if self.stage is not None:
            tags = set_namespaced(tags, STAGE_PREFIX, self.stage.value)
        tags = set_namespaced(tags, EXCLUSION_PREFIX, self.exclusion)
        tags = set_namespaced(
            tags,
            EXCLUSION_REASON_PREFIX,
            self.exclusion_reason if self.exclusion else None,
        )
        return tags

    @property
    def case_type(self) -> str:
        if self.bbs:
            return "bbs"
        if self.flex:
            return "flex"
        return "general"

    def is_excluded(self, stage: Optional[str] = None) -> bool:
        """True if statistics exclusion covers ``stage`` (or everything when None)."""
        if self.exclusion is None:
            return False
        if self.exclusion == EXCLUDE_ALL:
            return True
        return stage is not None and self.exclusion == stage
