"""
SQL completion engine.

Regex driven, dialect agnostic completion over SQL text; there is no SQL
parser. The text before the caret is checked against four stages in order
and the first stage that produces suggestions wins:

1. ``alias.col|``          columns of the table bound to ``alias``
2. ``FROM tab|`` / ``JOIN``  table names
3. inside a select list    ``alias.column`` pairs and function calls
4. anything else           keywords and functions

Identifiers may be unquoted, "double quoted", `backticked` or [bracketed],
with the usual doubled-delimiter escapes.
"""

from __future__ import annotations

import logging
import re

from completionls.completion.context import CompletionContext
from completionls.completion.engine import CompletionEngine
from completionls.completion.item import CompletionItem, CompletionKind
from completionls.engines.sql_schema import NONE, SchemaIntrospector
from completionls.settings import CompletionSettings

logger = logging.getLogger(__name__)


KEYWORDS = (
    "SELECT", "FROM", "WHERE", "GROUP BY", "HAVING", "ORDER BY", "LIMIT", "OFFSET",
    "JOIN", "LEFT JOIN", "RIGHT JOIN", "FULL JOIN", "INNER JOIN", "OUTER JOIN",
    "ON", "USING", "UNION", "UNION ALL", "EXCEPT", "INTERSECT",
    "INSERT", "INTO", "VALUES", "UPDATE", "SET", "DELETE",
    "CREATE", "ALTER", "DROP", "TABLE", "VIEW", "INDEX", "SCHEMA", "DATABASE",
    "AND", "OR", "NOT", "IN", "IS NULL", "IS NOT NULL", "LIKE", "BETWEEN",
    "CASE", "WHEN", "THEN", "ELSE", "END", "AS",
)

FUNCTIONS = (
    "COUNT", "SUM", "AVG", "MIN", "MAX", "UPPER", "LOWER", "SUBSTRING", "TRIM",
    "COALESCE", "NVL", "ROUND", "ABS", "FLOOR", "CEIL", "CAST", "CONCAT",
)

# Words that can follow a table name but never name an alias
_NOT_ALIASES = frozenset({
    "where", "join", "inner", "left", "right", "full", "outer", "cross", "natural",
    "on", "using", "group", "order", "having", "limit", "offset", "union",
    "except", "intersect", "set", "values", "select", "from", "as", "and", "or",
    "when", "then", "else", "end", "window", "returning",
})

UNQUOTED_IDENT = r"[^\W\d][\w$]*"
DQ_IDENT = r'"(?:[^"]|"")+"'
BT_IDENT = r"`(?:[^`]|``)+`"
BR_IDENT = r"\[(?:[^\]]|\]\])+\]"

ANY_IDENT = f"(?:{DQ_IDENT}|{BT_IDENT}|{BR_IDENT}|{UNQUOTED_IDENT})"
QUALIFIED_NAME = rf"{ANY_IDENT}(?:\.{ANY_IDENT})*"

# FROM|JOIN <qualified_table> [AS] <alias>
TABLE_ALIAS = re.compile(
    rf"\b(?:from|join)\s+({QUALIFIED_NAME})\s+(?:as\s+)?({ANY_IDENT})(?=\s|,|;|\)|\Z)",
    re.IGNORECASE,
)

# <alias>.<partial column> at the caret
QUALIFIED_COLUMN = re.compile(rf"({ANY_IDENT})\.(\w*)\Z", re.IGNORECASE)

# FROM|JOIN [partial table] at the caret
TABLE_POSITION = re.compile(r"\b(?:from|join)(?:\s+(\w*))?\Z", re.IGNORECASE)

_SELECT = re.compile(r"\bselect\b", re.IGNORECASE)
_FROM = re.compile(r"\bfrom\b", re.IGNORECASE)


def unquote_ident(ident: str) -> str:
    """Strip identifier quoting and undo doubled-delimiter escapes."""
    if len(ident) < 2:
        return ident
    first, last = ident[0], ident[-1]
    if first == '"' and last == '"':
        return ident[1:-1].replace('""', '"')
    if first == "`" and last == "`":
        return ident[1:-1].replace("``", "`")
    if first == "[" and last == "]":
        return ident[1:-1].replace("]]", "]")
    return ident


def extract_aliases(text: str) -> dict[str, str]:
    """
    Map lower-cased alias -> table name for every ``FROM``/``JOIN`` clause
    in ``text``. A later clause rebinding an alias wins.
    """
    aliases: dict[str, str] = {}
    pos = 0
    while match := TABLE_ALIAS.search(text, pos):
        alias = unquote_ident(match.group(2))
        if match.group(2) == alias and alias.lower() in _NOT_ALIASES:
            # "FROM a JOIN b x": the keyword may start the next clause
            pos = match.start(2)
            continue
        aliases[alias.lower()] = unquote_ident(match.group(1))
        pos = match.end()
    return aliases


def _last_start(pattern: re.Pattern[str], text: str) -> int:
    last = -1
    for match in pattern.finditer(text):
        last = match.start()
    return last


class SqlCompletionEngine(CompletionEngine):
    """Completes table, column, keyword and function names in SQL."""

    def __init__(
        self,
        schema: SchemaIntrospector | None = None,
        settings: CompletionSettings | None = None,
    ) -> None:
        self.schema = schema or NONE
        settings = settings or CompletionSettings()
        self.keywords = KEYWORDS + tuple(
            k for k in settings.sql_extra_keywords if k not in KEYWORDS
        )
        self.functions = FUNCTIONS + tuple(
            f for f in settings.sql_extra_functions if f not in FUNCTIONS
        )

    def supported_languages(self) -> frozenset[str]:
        return frozenset({"sql"})

    def set_schema(self, schema: SchemaIntrospector | None) -> None:
        """Swap the schema source; None disconnects it."""
        self.schema = schema or NONE

    def complete(self, context: CompletionContext) -> list[CompletionItem]:
        before = context.text_before_caret()
        prefix = context.token_prefix.lower()
        aliases = extract_aliases(before)

        items = self._complete_qualified_column(before, aliases)
        if items is not None:
            return items

        items = self._complete_table(before)
        if items:
            return items

        items = self._complete_select_list(before, prefix, aliases)
        if items:
            return items

        items = [
            CompletionItem(kw, kind=CompletionKind.KEYWORD)
            for kw in self.keywords
            if kw.lower().startswith(prefix)
        ]
        items.extend(self._function_items(prefix))
        return items

    def _complete_qualified_column(
        self, before: str, aliases: dict[str, str]
    ) -> list[CompletionItem] | None:
        """Columns for ``alias.partial``; None when the alias is unknown."""
        match = QUALIFIED_COLUMN.search(before)
        if not match:
            return None

        alias_raw = match.group(1)
        table = aliases.get(unquote_ident(alias_raw).lower())
        if table is None:
            return None

        column_prefix = match.group(2).lower()
        return [
            # Keep the alias as typed for display
            CompletionItem(column, f"{alias_raw}.{column}", CompletionKind.COLUMN)
            for column in self.schema.columns(table)
            if column.lower().startswith(column_prefix)
        ]

    def _complete_table(self, before: str) -> list[CompletionItem]:
        match = TABLE_POSITION.search(before)
        if not match:
            return []

        partial = (match.group(1) or "").lower()
        return [
            CompletionItem(table, kind=CompletionKind.TABLE)
            for table in self.schema.tables()
            if table.lower().startswith(partial)
        ]

    def _complete_select_list(
        self, before: str, prefix: str, aliases: dict[str, str]
    ) -> list[CompletionItem]:
        select_at = _last_start(_SELECT, before)
        if select_at < 0 or _last_start(_FROM, before) > select_at:
            return []

        items = []
        for alias, table in aliases.items():
            for column in self.schema.columns(table):
                if column.lower().startswith(prefix):
                    qualified = f"{alias}.{column}"
                    items.append(CompletionItem(qualified, qualified, CompletionKind.COLUMN))
        items.extend(self._function_items(prefix))
        return items

    def _function_items(self, prefix: str) -> list[CompletionItem]:
        return [
            CompletionItem(f"{fn}(", f"{fn}(...)", CompletionKind.FUNCTION)
            for fn in self.functions
            if fn.lower().startswith(prefix)
        ]
