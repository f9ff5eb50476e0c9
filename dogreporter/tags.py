"""Bracket-encoded tag names and tag list merging."""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from dogreporter.exceptions import InvalidArgument

# name[tag1:v1,tag2:v2]
TAG_PATTERN = re.compile(r"^([\w.-]+)\[(.+)\]$")


@dataclass(frozen=True)
class TaggedName:
    """A metric name split from the tags encoded in its bracket suffix."""
    metric_name: str
    encoded_tags: Tuple[str, ...] = ()

    def encode(self) -> str:
        """Render back into the ``name[tag,...]`` form."""
        if not self.encoded_tags:
            return self.metric_name
        return f"{self.metric_name}[{','.join(self.encoded_tags)}]"

    @classmethod
    def decode(cls, encoded: str) -> "TaggedName":
        """
        Parse ``name[tag1,tag2]`` into a TaggedName.

        Anything that does not match the grammar, including an empty tag
        inside the brackets, is returned as a bare name with no tags.
        """
        builder = TaggedNameBuilder()
        match = TAG_PATTERN.match(encoded)
        if match:
            parts = match.group(2).split(",")
            if all(part.strip() for part in parts):
                builder.metric_name(match.group(1))
                for part in parts:
                    builder.add_encoded_tag(part)
                return builder.build()

        return builder.metric_name(encoded).build()


class TaggedNameBuilder:
    """Fluent builder validating names and tags as they are added."""

    def __init__(self):
        self._metric_name: Optional[str] = None
        self._tags: List[str] = []

    def metric_name(self, name: str) -> "TaggedNameBuilder":
        self._metric_name = name
        return self

    def add_tag(self, key: str, value: str) -> "TaggedNameBuilder":
        _require_non_blank(key, "tag key")
        self._tags.append(f"{key}:{value}")
        return self

    def add_encoded_tag(self, tag: str) -> "TaggedNameBuilder":
        _require_non_blank(tag, "encoded tag")
        self._tags.append(tag)
        return self

    def build(self) -> TaggedName:
        _require_non_blank(self._metric_name, "metric name")
        return TaggedName(self._metric_name, tuple(self._tags))


def _require_non_blank(value: Optional[str], field: str):
    if value is None or not value.strip():
        raise InvalidArgument(f"{field} must be defined")


def tag_key(tag: str) -> Tuple[str, str]:
    """
    Key used to detect colliding tags.

    ``key:value`` tags collide on ``key``; bare tags only collide with an
    identical bare tag.
    """
    if ":" in tag:
        return ("kv", tag.split(":", 1)[0])
    return ("bare", tag)


def merge_tags(first: Optional[Iterable[str]], second: Optional[Iterable[str]]) -> List[str]:
    """
    Merge two tag lists by key, letting ``second`` win on collisions.

    Keys keep the position of their first appearance, so the result is
    deterministic for a given pair of inputs.
    """
    merged = {}
    for tag in first or ():
        merged[tag_key(tag)] = tag
    for tag in second or ():
        merged[tag_key(tag)] = tag
    return list(merged.values())
