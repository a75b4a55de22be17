"""Lesson content decoding.

Lesson content is an opaque payload that may encode an ordered list of
subsections (the smallest unit of completion). It is decoded into one of
two variants:

- HasSubsections: content carried a `subsections` list
- NoStructuredContent: anything else (absent, not JSON, no list)

A lesson without structured content counts as a single subsection.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog


logger = structlog.get_logger(__name__)

DEFAULT_SUBSECTION_COUNT = 1


@dataclass(frozen=True)
class HasSubsections:
    """Content with an explicit ordered subsection list."""

    subsections: tuple[Any, ...]

    @property
    def count(self) -> int:
        # Empty list still counts as one unit (denominators downstream)
        return max(len(self.subsections), DEFAULT_SUBSECTION_COUNT)

    def titles(self) -> list[str]:
        """Subsection titles, falling back to a positional label."""
        titles = []
        for index, subsection in enumerate(self.subsections):
            title = None
            if isinstance(subsection, Mapping):
                title = subsection.get("title")
            if not isinstance(title, str) or not title:
                title = f"Lección {index + 1}"
            titles.append(title)
        return titles


@dataclass(frozen=True)
class NoStructuredContent:
    """Content that does not describe subsections."""

    reason: str

    @property
    def count(self) -> int:
        return DEFAULT_SUBSECTION_COUNT

    def titles(self) -> list[str]:
        return []


LessonContent = HasSubsections | NoStructuredContent


def parse_lesson_content(content: Any) -> LessonContent:
    """Decode lesson content into a LessonContent variant.

    Never raises: every decode failure maps to NoStructuredContent.

    Args:
        content: JSON text, bytes, an already-decoded mapping, or None

    Returns:
        HasSubsections or NoStructuredContent
    """
    if content is None or content == "" or content == b"":
        return NoStructuredContent("empty")

    data = content
    if isinstance(content, (str, bytes, bytearray)):
        try:
            data = json.loads(content)
        except (ValueError, TypeError, RecursionError):
            return NoStructuredContent("invalid_json")

    if not isinstance(data, Mapping):
        return NoStructuredContent("not_an_object")

    subsections = data.get("subsections")
    if subsections is None:
        return NoStructuredContent("no_subsections")
    if not isinstance(subsections, list):
        return NoStructuredContent("subsections_not_a_list")

    return HasSubsections(tuple(subsections))


def subsection_count(content: Any) -> int:
    """Number of completable subsections in a lesson (always >= 1)."""
    parsed = parse_lesson_content(content)
    if isinstance(parsed, NoStructuredContent) and parsed.reason == "invalid_json":
        logger.debug("lesson_content_unparsable", reason=parsed.reason)
    return parsed.count
