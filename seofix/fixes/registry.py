"""
Fixer registry — maps issue types to Fixer capabilities.
"""

from __future__ import annotations

from typing import Callable, Iterator, TypeVar

from seofix.core.log import logger
from seofix.interfaces import Fixer

__all__ = ("FixerRegistry",)

F = TypeVar("F", bound=Fixer)


class FixerRegistry:
    """
    Issue type → Fixer mapping.

    One Fixer may serve several issue types (e.g. ``missing_h1`` and
    ``heading_structure``). Lookups for unregistered types return None; the
    orchestrator turns those into failed fixes.
    """

    def __init__(self, fixers: dict[str, Fixer] | None = None):
        self._fixers: dict[str, Fixer] = {}
        for issue_type, fixer in (fixers or {}).items():
            self.register(issue_type, fixer)

    def register(self, issue_type: str, fixer: Fixer, *aliases: str) -> None:
        if not isinstance(fixer, Fixer):
            raise TypeError(f"{fixer!r} does not implement Fixer.apply")
        for key in (issue_type, *aliases):
            if key in self._fixers and self._fixers[key] is not fixer:
                logger.warning(f"Replacing fixer for issue type '{key}'")
            self._fixers[key] = fixer

    def fixer(self, issue_type: str, *aliases: str) -> Callable[[type[F]], type[F]]:
        """Class decorator registering a no-argument Fixer class."""

        def decorator(cls: type[F]) -> type[F]:
            self.register(issue_type, cls(), *aliases)
            return cls

        return decorator

    def unregister(self, issue_type: str) -> None:
        self._fixers.pop(issue_type, None)

    def get(self, issue_type: str) -> Fixer | None:
        return self._fixers.get(issue_type)

    def supported_types(self) -> list[str]:
        return sorted(self._fixers)

    def __contains__(self, issue_type: object) -> bool:
        return issue_type in self._fixers

    def __iter__(self) -> Iterator[str]:
        return iter(self._fixers)

    def __len__(self) -> int:
        return len(self._fixers)
