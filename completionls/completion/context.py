"""
Completion context.

A CompletionContext is an immutable snapshot of one completion request: the
document text, the caret position and the structural facts engines ask about
(are we after a dot, inside a string or comment, is the receiver a type).
Derived facts are computed on first access and memoised for the lifetime of
the instance.

Usage:
    ctx = (
        CompletionContext.builder()
        .full_text("def x = 'hi'\\nx.")
        .caret_position(15)
        .build()
    )
    ctx.is_member_access()   # True
    ctx.expression_before    # "x"
    ctx.token_prefix         # ""
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from functools import cached_property
from types import MappingProxyType
from typing import Any, TypeVar

from completionls.workspace.resolution import ResolutionContext, current_context

T = TypeVar("T")

_IDENT = r"[^\W\d]\w*"
_CALL = r"(?:\([^)]*\))?"

# receiver chain (identifiers with optional call suffixes joined by dots),
# a final dot and the partial member name, anchored at the caret
MEMBER_ACCESS_PATTERN = re.compile(
    rf"({_IDENT}{_CALL}(?:\.{_IDENT}{_CALL})*)\.(\w*)\Z"
)

_TRAILING_WORD = re.compile(r"\w*\Z")

_C_STRINGS = (
    r'"""[\s\S]*?(?:"""|\Z)'
    r"|'''[\s\S]*?(?:'''|\Z)"
    r'|"(?:\\.|[^"\\\n])*"?'
    r"|'(?:\\.|[^'\\\n])*'?"
)
_BLOCK_COMMENT = r"/\*(?:[\s\S]*?\*/|[\s\S]*\Z)"

# (strings, comments) per syntax family
_LEXICAL_RULES = {
    "default": (_C_STRINGS, r"//[^\n]*|" + _BLOCK_COMMENT),
    "python": (_C_STRINGS, r"#[^\n]*"),
    "sql": (r"'(?:''|[^'])*'?", r"--[^\n]*|" + _BLOCK_COMMENT),
}

_LANGUAGE_FAMILIES = {
    "python": "python",
    "py": "python",
    "sql": "sql",
}

_LEXICAL_PATTERNS = {
    family: re.compile(f"(?P<string>{strings})|(?P<comment>{comments})")
    for family, (strings, comments) in _LEXICAL_RULES.items()
}


def lexical_pattern(language: str | None) -> re.Pattern[str]:
    """The combined string/comment pattern used for ``language``."""
    family = _LANGUAGE_FAMILIES.get((language or "").lower(), "default")
    return _LEXICAL_PATTERNS[family]


class CompletionContext:
    """Read-only view over a text snapshot and caret offset."""

    def __init__(
        self,
        full_text: str | None,
        caret_position: int,
        line_text: str | None = None,
        line_offset: int | None = None,
        token_prefix: str | None = None,
        expression_before: str | None = None,
        resolution_context: ResolutionContext | None = None,
        language: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self._full_text = full_text or ""
        self._caret = max(0, min(caret_position, len(self._full_text)))

        line_start = self._full_text.rfind("\n", 0, self._caret) + 1
        line_end = self._full_text.find("\n", self._caret)
        if line_end < 0:
            line_end = len(self._full_text)

        self._line_text = (
            line_text if line_text is not None else self._full_text[line_start:line_end]
        )
        self._line_offset = (
            line_offset if line_offset is not None else self._caret - line_start
        )
        self._token_prefix = token_prefix or ""
        self._expression_before = expression_before
        self._resolution_context = resolution_context
        self._language = language.lower() if language else None
        self._metadata = MappingProxyType(dict(metadata or {}))

    def __repr__(self) -> str:
        return (
            f"CompletionContext(caret={self._caret}, prefix={self._token_prefix!r}, "
            f"expression_before={self._expression_before!r})"
        )

    @staticmethod
    def builder() -> CompletionContextBuilder:
        return CompletionContextBuilder()

    @property
    def full_text(self) -> str:
        return self._full_text

    @property
    def caret_position(self) -> int:
        return self._caret

    @property
    def line_text(self) -> str:
        return self._line_text

    @property
    def line_offset(self) -> int:
        return self._line_offset

    @property
    def token_prefix(self) -> str:
        """The partial identifier being typed."""
        return self._token_prefix

    @property
    def expression_before(self) -> str | None:
        """The receiver expression before the dot, if any."""
        return self._expression_before

    @property
    def language(self) -> str | None:
        return self._language

    @property
    def resolution_context(self) -> ResolutionContext:
        """The context's resolution context, or the calling thread's."""
        if self._resolution_context is not None:
            return self._resolution_context
        return current_context()

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._metadata

    def metadata_value(self, key: str, expected_type: type[T]) -> T | None:
        """Metadata value for ``key`` if it is an instance of ``expected_type``."""
        value = self._metadata.get(key)
        return value if isinstance(value, expected_type) else None

    def text_before_caret(self) -> str:
        return self._full_text[: self._caret]

    def is_member_access(self) -> bool:
        """True if the text before the caret ends in ``<receiver>.<partial>``."""
        return self._member_access

    def is_static_context(self) -> bool:
        """
        True if the receiver looks like a type or package reference
        (starts uppercase or is dotted) rather than a variable.
        """
        expr = self._expression_before
        if not expr:
            return False
        return expr[0].isupper() or "." in expr

    def is_inside_string(self) -> bool:
        return self._inside_string

    def is_inside_comment(self) -> bool:
        return self._inside_comment

    @cached_property
    def _member_access(self) -> bool:
        return MEMBER_ACCESS_PATTERN.search(self.text_before_caret()) is not None

    @cached_property
    def _inside_string(self) -> bool:
        return self._caret_in_group("string")

    @cached_property
    def _inside_comment(self) -> bool:
        return self._caret_in_group("comment")

    def _caret_in_group(self, group: str) -> bool:
        for match in lexical_pattern(self._language).finditer(self._full_text):
            if match.start() > self._caret:
                break
            if match.group(group) is not None and match.start() <= self._caret <= match.end():
                return True
        return False


class CompletionContextBuilder:
    """Fluent builder for CompletionContext."""

    def __init__(self) -> None:
        self._full_text: str | None = None
        self._caret_position = 0
        self._line_text: str | None = None
        self._line_offset: int | None = None
        self._token_prefix: str | None = None
        self._expression_before: str | None = None
        self._resolution_context: ResolutionContext | None = None
        self._language: str | None = None
        self._metadata: dict[str, Any] = {}

    def full_text(self, full_text: str | None) -> CompletionContextBuilder:
        self._full_text = full_text
        return self

    def caret_position(self, caret_position: int) -> CompletionContextBuilder:
        self._caret_position = caret_position
        return self

    def line_text(self, line_text: str) -> CompletionContextBuilder:
        self._line_text = line_text
        return self

    def line_offset(self, line_offset: int) -> CompletionContextBuilder:
        self._line_offset = line_offset
        return self

    def token_prefix(self, token_prefix: str | None) -> CompletionContextBuilder:
        self._token_prefix = token_prefix
        return self

    def expression_before(self, expression_before: str | None) -> CompletionContextBuilder:
        self._expression_before = expression_before
        return self

    def resolution_context(self, ctx: ResolutionContext | None) -> CompletionContextBuilder:
        self._resolution_context = ctx
        return self

    def language(self, language: str | None) -> CompletionContextBuilder:
        self._language = language
        return self

    def metadata(self, metadata: Mapping[str, Any]) -> CompletionContextBuilder:
        self._metadata = dict(metadata)
        return self

    def metadata_value(self, key: str, value: Any) -> CompletionContextBuilder:
        self._metadata[key] = value
        return self

    def build(self) -> CompletionContext:
        """
        Build the context, deriving the receiver expression and the token
        prefix from the text before the caret when they were not supplied.
        """
        text = self._full_text or ""
        caret = max(0, min(self._caret_position, len(text)))
        before = text[:caret]

        expression_before = self._expression_before
        token_prefix = self._token_prefix

        if expression_before is None and caret > 0:
            match = MEMBER_ACCESS_PATTERN.search(before)
            if match:
                expression_before = match.group(1)
                if token_prefix is None:
                    token_prefix = match.group(2)

        if token_prefix is None:
            token_prefix = _TRAILING_WORD.search(before).group(0)

        return CompletionContext(
            full_text=text,
            caret_position=caret,
            line_text=self._line_text,
            line_offset=self._line_offset,
            token_prefix=token_prefix,
            expression_before=expression_before,
            resolution_context=self._resolution_context,
            language=self._language,
            metadata=self._metadata,
        )
