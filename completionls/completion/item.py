"""Completion items returned by the engines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from lsprotocol.types import CompletionItem as LspCompletionItem
from lsprotocol.types import CompletionItemKind


class CompletionKind(Enum):
    """What a suggestion refers to."""

    KEYWORD = "keyword"
    CLASS = "class"
    METHOD = "method"
    FIELD = "field"
    FUNCTION = "function"
    TABLE = "table"
    COLUMN = "column"
    SNIPPET = "snippet"
    VARIABLE = "variable"
    PARAMETER = "parameter"
    PROPERTY = "property"
    CONSTANT = "constant"
    INTERFACE = "interface"
    ENUM = "enum"
    MODULE = "module"


# Kinds whose label shows the display text rather than the completion text
_DISPLAY_LABEL_KINDS = frozenset({
    CompletionKind.METHOD,
    CompletionKind.FIELD,
    CompletionKind.COLUMN,
    CompletionKind.SNIPPET,
})

_LSP_KINDS = {
    CompletionKind.KEYWORD: CompletionItemKind.Keyword,
    CompletionKind.CLASS: CompletionItemKind.Class,
    CompletionKind.METHOD: CompletionItemKind.Method,
    CompletionKind.FIELD: CompletionItemKind.Field,
    CompletionKind.FUNCTION: CompletionItemKind.Function,
    CompletionKind.TABLE: CompletionItemKind.Struct,
    CompletionKind.COLUMN: CompletionItemKind.Field,
    CompletionKind.SNIPPET: CompletionItemKind.Snippet,
    CompletionKind.VARIABLE: CompletionItemKind.Variable,
    CompletionKind.PARAMETER: CompletionItemKind.TypeParameter,
    CompletionKind.PROPERTY: CompletionItemKind.Property,
    CompletionKind.CONSTANT: CompletionItemKind.Constant,
    CompletionKind.INTERFACE: CompletionItemKind.Interface,
    CompletionKind.ENUM: CompletionItemKind.Enum,
    CompletionKind.MODULE: CompletionItemKind.Module,
}


@dataclass(frozen=True)
class CompletionItem:
    """
    A single completion suggestion.

    Attributes:
        completion: Text used for filtering and basic insertion
        display: Text shown in the completion popup (defaults to completion)
        kind: What the suggestion refers to
        detail: Extra information such as a fully qualified name
        insert_text: Alternative text to insert instead of completion
        sort_priority: Lower values are listed first
        cursor_offset: Caret offset from the end of the inserted text
            (-1 places the caret inside trailing parentheses)
    """

    completion: str
    display: str = ""
    kind: CompletionKind = CompletionKind.KEYWORD
    detail: str | None = None
    insert_text: str | None = None
    sort_priority: int = 100
    cursor_offset: int = 0

    def __post_init__(self):
        if not self.display:
            object.__setattr__(self, "display", self.completion)

    @property
    def text_to_insert(self) -> str:
        return self.insert_text if self.insert_text is not None else self.completion

    def render_label(self) -> str:
        """Render the popup label, e.g. ``"foo()  - method"``."""
        base = self.display if self.kind in _DISPLAY_LABEL_KINDS else self.completion
        if self.detail:
            return f"{base}  {self.detail}  - {self.kind.value}"
        return f"{base}  - {self.kind.value}"

    def to_lsp(self, rank: int = 0) -> LspCompletionItem:
        """
        Convert to an LSP completion item.

        ``rank`` is the item's position in the engine's result; it becomes the
        sort text so clients keep the engine's ordering.
        """
        return LspCompletionItem(
            label=self.display,
            kind=_LSP_KINDS[self.kind],
            detail=self.detail,
            filter_text=self.completion,
            insert_text=self.text_to_insert,
            sort_text=f"{rank:05d}",
        )
