"""Taxonomy models for the construction hierarchy master."""

from dataclasses import dataclass, field
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict

from .base import HierarchyLevel


# Level order below the root. Remark nodes are optional leaves.
LEVEL_ORDER = (
    HierarchyLevel.CATEGORY,
    HierarchyLevel.WORK_TYPE,
    HierarchyLevel.VARIETY,
    HierarchyLevel.DETAIL,
    HierarchyLevel.REMARK,
)

# Levels that may carry a pattern set
PATTERN_LEVELS = (HierarchyLevel.DETAIL, HierarchyLevel.REMARK)


class HierarchyPath(BaseModel):
    """Full ancestor chain of a taxonomy leaf."""

    model_config = ConfigDict(frozen=True)

    category: str
    work_type: str
    variety: str
    detail: str
    remark: str = ""

    @property
    def leaf_key(self) -> str:
        """Key of the terminal node: the remark when present, else the detail."""
        return self.remark or self.detail

    def as_tuple(self) -> tuple[str, str, str, str, str]:
        return (self.category, self.work_type, self.variety, self.detail, self.remark)


@dataclass
class HierarchyNode:
    """One node of the taxonomy tree.

    Children keep insertion order, which defines master traversal order.
    """

    key: str
    level: Optional[HierarchyLevel] = None  # None only for the root
    children: dict[str, "HierarchyNode"] = field(default_factory=dict)
    patterns: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.level is None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def child_level(self) -> HierarchyLevel:
        """Level that children of this node belong to."""
        if self.level is None:
            return LEVEL_ORDER[0]
        index = LEVEL_ORDER.index(self.level)
        if index + 1 >= len(LEVEL_ORDER):
            raise ValueError(f"Node '{self.key}' is at the deepest level")
        return LEVEL_ORDER[index + 1]

    def walk(self, prefix: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], "HierarchyNode"]]:
        """Yield (key chain, node) pairs depth-first in insertion order."""
        for key, child in self.children.items():
            chain = prefix + (key,)
            yield chain, child
            yield from child.walk(chain)

    def copy(self) -> "HierarchyNode":
        """Deep copy of this subtree."""
        return HierarchyNode(
            key=self.key,
            level=self.level,
            children={k: c.copy() for k, c in self.children.items()},
            patterns=self.patterns,
        )


@dataclass(frozen=True)
class MatchEntry:
    """A pattern set together with the canonical path it points to."""

    path: HierarchyPath
    patterns: tuple[str, ...]
    order: int  # position in master traversal order
