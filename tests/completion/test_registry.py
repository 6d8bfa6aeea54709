"""
Tests for completionls/completion/registry.py
"""

import logging
from unittest.mock import Mock

import pytest

from completionls.completion.context import CompletionContext
from completionls.completion.engine import CompletionEngine
from completionls.completion.item import CompletionItem
from completionls.completion.registry import CompletionRegistry
from completionls.workspace.symbol_index import SymbolIndexCache


class FakeEngine(CompletionEngine):
    """Engine returning a fixed suggestion."""

    def __init__(self, *languages, suggestion="item"):
        self.languages = frozenset(languages)
        self.suggestion = suggestion
        self.invalidations = 0

    def supported_languages(self):
        return self.languages

    def complete(self, context):
        return [CompletionItem(self.suggestion)]

    def invalidate_cache(self):
        self.invalidations += 1


class FailingEngine(FakeEngine):
    """Engine whose every operation fails."""

    def complete(self, context):
        raise RuntimeError("boom")

    def invalidate_cache(self):
        raise RuntimeError("boom")


@pytest.fixture
def symbol_index():
    return Mock(spec=SymbolIndexCache)


@pytest.fixture
def registry(symbol_index):
    return CompletionRegistry(symbol_index)


@pytest.fixture
def context():
    return CompletionContext("", 0)


class TestRegistration:
    """Tests for register/unregister and lookups."""

    def test_lookup_is_case_insensitive(self, registry):
        engine = FakeEngine("SQL")
        registry.register(engine)

        assert registry.get_engine("sql") is engine
        assert registry.get_engine("Sql") is engine
        assert registry.has_engine("SQL")
        assert registry.supported_languages() == frozenset({"sql"})

    def test_unknown_language(self, registry):
        assert registry.get_engine("cobol") is None
        assert registry.get_engine(None) is None
        assert not registry.has_engine("cobol")

    def test_register_none_is_ignored(self, registry):
        registry.register(None)

        assert registry.engines() == []

    def test_second_engine_replaces_first(self, registry, caplog):
        first = FakeEngine("sql", suggestion="first")
        second = FakeEngine("sql", suggestion="second")
        registry.register(first)

        with caplog.at_level(logging.INFO, logger="completionls.completion.registry"):
            registry.register(second)

        assert registry.get_engine("sql") is second
        assert "Replaced completion engine" in caplog.text

    def test_engine_serves_every_declared_language(self, registry):
        engine = FakeEngine("javascript", "js")
        registry.register(engine)

        assert registry.get_engine("js") is engine
        assert registry.get_engine("javascript") is engine
        assert registry.engines() == [engine]

    def test_unregister(self, registry):
        engine = FakeEngine("javascript", "js")
        registry.register(engine)
        registry.unregister(engine)

        assert not registry.has_engine("js")
        assert registry.engines() == []

    def test_unregister_keeps_replacement(self, registry):
        first = FakeEngine("sql")
        second = FakeEngine("sql")
        registry.register(first)
        registry.register(second)

        registry.unregister(first)

        assert registry.get_engine("sql") is second


class TestComplete:
    """Tests for routing completion requests."""

    def test_routes_to_engine(self, registry, context):
        registry.register(FakeEngine("sql", suggestion="SELECT"))

        items = registry.complete("SQL", context)

        assert [item.completion for item in items] == ["SELECT"]

    def test_no_engine_returns_empty(self, registry, context):
        assert registry.complete("cobol", context) == []
        assert registry.complete(None, context) == []

    def test_engine_failure_returns_empty(self, registry, context, caplog):
        registry.register(FailingEngine("sql"))

        with caplog.at_level(logging.WARNING):
            assert registry.complete("sql", context) == []

        assert "Completion failed" in caplog.text


class TestInvalidateAll:
    """Tests for cache invalidation."""

    def test_each_engine_invalidated_once(self, registry, symbol_index):
        multi = FakeEngine("javascript", "js")
        single = FakeEngine("sql")
        registry.register(multi)
        registry.register(single)

        registry.invalidate_all()

        assert multi.invalidations == 1
        assert single.invalidations == 1
        symbol_index.invalidate_all.assert_called_once()

    def test_failing_engine_does_not_block_others(self, registry, symbol_index):
        failing = FailingEngine("sql")
        healthy = FakeEngine("js")
        registry.register(failing)
        registry.register(healthy)

        registry.invalidate_all()

        assert healthy.invalidations == 1
        symbol_index.invalidate_all.assert_called_once()

    def test_replaced_engine_still_invalidated(self, registry):
        first = FakeEngine("sql")
        second = FakeEngine("sql")
        registry.register(first)
        registry.register(second)

        registry.invalidate_all()

        assert first.invalidations == 1
        assert second.invalidations == 1


class TestDefaults:
    """Tests for the built-in engines."""

    def test_register_defaults(self):
        registry = CompletionRegistry()
        registry.register_defaults()

        assert registry.supported_languages() == frozenset(
            {"python", "py", "sql", "javascript", "js"}
        )

    def test_python_engine_shares_symbol_index(self):
        index = SymbolIndexCache()
        registry = CompletionRegistry(index)
        registry.register_defaults()

        assert registry.get_engine("python").symbol_index is index
