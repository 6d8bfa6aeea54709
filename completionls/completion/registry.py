"""
Completion Registry

Maps language identifiers to completion engines and routes completion
requests to them, similar to how CapabilityManager routes LSP features to
capability handlers.

The registry is constructed explicitly (normally once, by the language
server) and passed to whoever needs it. It owns the SymbolIndexCache that
the engines share, so invalidate_all() resets every cached view of the
library set in one call.

Usage:
    registry = CompletionRegistry()
    registry.register_defaults(schema=StaticSchemaIntrospector({...}))

    items = registry.complete("sql", context)

    # After a dependency was attached or removed
    registry.invalidate_all()
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from completionls.completion.context import CompletionContext
from completionls.completion.engine import CompletionEngine
from completionls.completion.item import CompletionItem
from completionls.settings import CompletionSettings
from completionls.workspace.symbol_index import SymbolIndexCache

if TYPE_CHECKING:
    from completionls.engines.sql_schema import SchemaIntrospector

logger = logging.getLogger(__name__)


class CompletionRegistry:
    """Thread-safe directory of completion engines by language."""

    def __init__(self, symbol_index: SymbolIndexCache | None = None) -> None:
        self.symbol_index = symbol_index or SymbolIndexCache()
        self._engines_by_language: dict[str, CompletionEngine] = {}
        self._engines: list[CompletionEngine] = []
        self._lock = threading.Lock()

    def register(self, engine: CompletionEngine | None) -> None:
        """
        Register an engine under every language it declares.

        A language already served by another engine is taken over by this
        one.
        """
        if engine is None:
            return

        with self._lock:
            if not any(e is engine for e in self._engines):
                self._engines.append(engine)

            for language in engine.supported_languages():
                key = language.lower()
                existing = self._engines_by_language.get(key)
                self._engines_by_language[key] = engine
                if existing is not None and existing is not engine:
                    logger.info(
                        "Replaced completion engine for '%s': %s -> %s",
                        language, existing.name, engine.name,
                    )
                else:
                    logger.debug(
                        "Registered completion engine for '%s': %s",
                        language, engine.name,
                    )

    def unregister(self, engine: CompletionEngine | None) -> None:
        """Remove every language association of an engine."""
        if engine is None:
            return

        with self._lock:
            self._engines = [e for e in self._engines if e is not engine]
            for language in engine.supported_languages():
                key = language.lower()
                if self._engines_by_language.get(key) is engine:
                    del self._engines_by_language[key]

    def get_engine(self, language: str | None) -> CompletionEngine | None:
        """Engine for ``language`` (case-insensitive), or None."""
        if language is None:
            return None
        with self._lock:
            return self._engines_by_language.get(language.lower())

    def has_engine(self, language: str | None) -> bool:
        return self.get_engine(language) is not None

    def supported_languages(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._engines_by_language)

    def engines(self) -> list[CompletionEngine]:
        """Distinct registered engines in registration order."""
        with self._lock:
            return list(self._engines)

    def complete(self, language: str | None, context: CompletionContext) -> list[CompletionItem]:
        """
        Complete ``context`` with the engine registered for ``language``.

        Returns an empty list when no engine is registered or the engine
        fails.
        """
        engine = self.get_engine(language)
        if engine is None:
            logger.debug("No completion engine registered for language: %s", language)
            return []

        try:
            return engine.complete(context)
        except Exception as e:
            logger.warning("Completion failed in %s: %s", engine.name, e, exc_info=True)
            return []

    def invalidate_all(self) -> None:
        """
        Invalidate every engine's caches and the shared symbol index.

        A failing engine does not stop the others from being invalidated.
        """
        logger.debug("Invalidating all completion engine caches")
        for engine in self.engines():
            try:
                engine.invalidate_cache()
            except Exception as e:
                logger.warning("Failed to invalidate cache for engine %s: %s", engine.name, e)
        self.symbol_index.invalidate_all()

    def register_defaults(
        self,
        schema: SchemaIntrospector | None = None,
        settings: CompletionSettings | None = None,
    ) -> None:
        """Register the built-in Python, SQL and JavaScript engines."""
        from completionls.engines.javascript_engine import JavascriptCompletionEngine
        from completionls.engines.python_engine import PythonCompletionEngine
        from completionls.engines.sql_engine import SqlCompletionEngine

        settings = settings or self.symbol_index.settings
        for engine in (
            PythonCompletionEngine(self.symbol_index, settings),
            SqlCompletionEngine(schema, settings),
            JavascriptCompletionEngine(),
        ):
            self.register(engine)
