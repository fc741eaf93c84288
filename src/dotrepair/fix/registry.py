"""Fixer definitions and the registry that maps check IDs to them.

Patterns are exact check IDs or ``fnmatch`` globs (``shell.rc.*``). When
several patterns match one check, the most specific wins:

1. an exact pattern beats any glob;
2. otherwise the longest literal prefix (text before the first ``*``, ``?``
   or ``[``) wins;
3. remaining ties go to the fixer registered first.
"""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Callable, Iterable, Iterator

from dotrepair.core.config import RepairConfig
from dotrepair.core.models import Category, Check, FixPlan, GuardResult, Severity
from dotrepair.fix.commands import CommandRunner

GLOB_CHARS = "*?["


@dataclass(frozen=True)
class FixContext:
    """Everything a fixer callable may look at.

    ``planned`` holds paths an earlier fixer in a dry run would have
    created. Guards and plans ask :meth:`exists` so a plan sees the same
    filesystem the real run would.
    """

    config: RepairConfig
    check: Check
    runner: CommandRunner
    planned: frozenset[Path] = frozenset()

    @property
    def home(self) -> Path:
        return self.config.home

    def exists(self, path: Path) -> bool:
        return path.exists() or path in self.planned


@dataclass(frozen=True)
class Fixer:
    """A registered remediation procedure.

    ``guard`` must be free of side effects. ``plan`` and ``apply`` are
    required for Auto and Prompt fixers; Manual fixers only carry a
    ``suggestion``.
    """

    fixer_id: str
    pattern: str
    category: Category
    description: str
    guard: Callable[[FixContext], GuardResult]
    plan: Callable[[FixContext], FixPlan] | None = None
    apply: Callable[[FixContext], None] | None = None
    suggestion: Callable[[FixContext], str] | None = None
    severity: Severity = Severity.INFO

    def __post_init__(self) -> None:
        if self.category == Category.MANUAL:
            if self.suggestion is None:
                raise ValueError(f"Manual fixer {self.fixer_id} needs a suggestion")
            if self.apply is not None:
                raise ValueError(f"Manual fixer {self.fixer_id} must not define apply")
        elif self.plan is None or self.apply is None:
            raise ValueError(f"Fixer {self.fixer_id} needs both plan and apply")

    def matches(self, check_id: str) -> bool:
        if is_glob(self.pattern):
            return fnmatchcase(check_id, self.pattern)
        return check_id == self.pattern

    def describe(self, ctx: FixContext) -> str:
        return self.description.format(
            target=ctx.check.target or "",
            check_id=ctx.check.check_id,
        )


def is_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in GLOB_CHARS)


def literal_prefix(pattern: str) -> str:
    for i, ch in enumerate(pattern):
        if ch in GLOB_CHARS:
            return pattern[:i]
    return pattern


class FixerRegistry:
    """Ordered, immutable-after-build lookup of fixers.

    Example:
        >>> registry = FixerRegistry([path_fixer, theme_fixer])
        >>> fixer = registry.match("path.ordering")
    """

    def __init__(self, fixers: Iterable[Fixer] = ()) -> None:
        self._fixers: list[Fixer] = []
        self._by_id: dict[str, int] = {}
        for fixer in fixers:
            self.register(fixer)

    def register(self, fixer: Fixer) -> None:
        """Add a fixer at the end of dispatch order.

        Raises:
            ValueError: If the fixer ID or its pattern is already registered.
        """
        if fixer.fixer_id in self._by_id:
            raise ValueError(f"Fixer '{fixer.fixer_id}' already registered")
        for existing in self._fixers:
            if existing.pattern == fixer.pattern:
                raise ValueError(
                    f"Pattern '{fixer.pattern}' already registered by '{existing.fixer_id}'"
                )
        self._by_id[fixer.fixer_id] = len(self._fixers)
        self._fixers.append(fixer)

    def match(self, check_id: str) -> Fixer | None:
        """Return the most specific fixer for ``check_id``, or None."""
        best: Fixer | None = None
        best_key: tuple[int, int] | None = None
        for fixer in self._fixers:
            if not fixer.matches(check_id):
                continue
            key = (0 if is_glob(fixer.pattern) else 1, len(literal_prefix(fixer.pattern)))
            # strict comparison keeps the earliest registered fixer on ties
            if best_key is None or key > best_key:
                best, best_key = fixer, key
        return best

    def classify(self, fixer: Fixer) -> Category:
        return fixer.category

    def index(self, fixer: Fixer) -> int:
        return self._by_id[fixer.fixer_id]

    def __iter__(self) -> Iterator[Fixer]:
        return iter(self._fixers)

    def __len__(self) -> int:
        return len(self._fixers)
