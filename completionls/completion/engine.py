"""
Completion engine interface.

Each supported language implements CompletionEngine and is registered with
a CompletionRegistry under the language identifiers it declares.

Design Principles:
1. Stateless per call (complete() may run on several threads at once)
2. Caches are owned by the engine and dropped in invalidate_cache()
3. Never raise for odd input; return an empty list instead
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from completionls.completion.context import CompletionContext
from completionls.completion.item import CompletionItem


class CompletionEngine(ABC):
    """Base class for language-specific completion engines."""

    @abstractmethod
    def complete(self, context: CompletionContext) -> list[CompletionItem]:
        """
        Return completion items for the context, most relevant first.
        """
        pass

    @abstractmethod
    def supported_languages(self) -> frozenset[str]:
        """Language identifiers served by this engine (e.g. "sql")."""
        pass

    def invalidate_cache(self) -> None:
        """
        Drop cached data derived from the library set.

        Called when libraries are added or removed. Default does nothing.
        """
        pass

    @property
    def name(self) -> str:
        """Name used in logs."""
        return type(self).__name__
