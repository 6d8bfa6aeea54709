"""
Tests for completionls/engines/javascript_engine.py
"""

import pytest

from completionls.completion.context import CompletionContext
from completionls.completion.item import CompletionKind
from completionls.engines.javascript_engine import KEYWORDS, JavascriptCompletionEngine


@pytest.fixture
def engine():
    return JavascriptCompletionEngine()


def complete(engine, text):
    context = (
        CompletionContext.builder()
        .full_text(text)
        .caret_position(len(text))
        .language("javascript")
        .build()
    )
    return [item.completion for item in engine.complete(context)]


class TestJavascriptCompletionEngine:

    def test_languages(self, engine):
        assert engine.supported_languages() == frozenset({"javascript", "js"})

    def test_prefix(self, engine):
        assert complete(engine, "fu") == ["function"]

    def test_prefix_is_case_insensitive(self, engine):
        assert complete(engine, "RET") == ["return"]

    def test_declaration_order(self, engine):
        assert complete(engine, "co") == ["const", "continue"]

    def test_all_keywords(self, engine):
        assert complete(engine, "") == list(KEYWORDS)

    def test_kind(self, engine):
        context = CompletionContext.builder().full_text("wh").caret_position(2).build()

        items = engine.complete(context)

        assert [item.kind for item in items] == [CompletionKind.KEYWORD]

    def test_nothing_inside_string(self, engine):
        assert complete(engine, 'var s = "fu') == []

    def test_nothing_inside_comment(self, engine):
        assert complete(engine, "// fu") == []
        assert complete(engine, "/* fu") == []
