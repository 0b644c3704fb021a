"""
Feature Contracts - Feature Paths

A Path names a feature by its sequence of steps. Top-level features have a
single step; features nested inside a struct carry the struct's steps as a
prefix. Paths compare step by step, so a parent always sorts immediately
before its children.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Union

from feature_contracts.validation.errors import ParseError

PATH_SEPARATOR = "."


@dataclass(frozen=True, order=True)
class Path:
    """Structural identifier of a (possibly nested) feature."""

    steps: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept any sequence of steps but always store a tuple
        if not isinstance(self.steps, tuple):
            object.__setattr__(self, "steps", tuple(self.steps))

    @classmethod
    def parse(cls, value: PathLike) -> Path:
        """
        Build a Path from a Path, a dotted string, or a sequence of steps.

        Raises:
            ParseError: If the value has no steps or a step is not a non-empty string
        """
        if isinstance(value, Path):
            return value
        if isinstance(value, str):
            steps: Sequence[object] = value.split(PATH_SEPARATOR)
        elif isinstance(value, (list, tuple)):
            steps = value
        else:
            raise ParseError(f"Cannot build a path from {type(value).__name__}: {value!r}")

        if not steps or any(not isinstance(s, str) or not s for s in steps):
            raise ParseError(f"Invalid path: {value!r}")
        return cls(tuple(steps))  # type: ignore[arg-type]

    @property
    def name(self) -> str:
        """Last step of the path."""
        return self.steps[-1] if self.steps else ""

    @property
    def depth(self) -> int:
        return len(self.steps)

    def parent(self) -> Path:
        return Path(self.steps[:-1])

    def child(self, step: str) -> Path:
        return Path(self.steps + (step,))

    def is_ancestor_of(self, other: Path) -> bool:
        """True when `other` is nested (at any depth) below this path."""
        return len(other.steps) > len(self.steps) and other.steps[: len(self.steps)] == self.steps

    def ancestors(self) -> Iterable[Path]:
        """Yield proper ancestors from the top level down."""
        for i in range(1, len(self.steps)):
            yield Path(self.steps[:i])

    def to_list(self) -> list[str]:
        return list(self.steps)

    def __str__(self) -> str:
        return PATH_SEPARATOR.join(self.steps)


PathLike = Union[Path, str, Sequence[str]]
