from completionls.completion.context import CompletionContext
from completionls.completion.engine import CompletionEngine
from completionls.completion.item import CompletionItem, CompletionKind


KEYWORDS = (
    "await", "break", "case", "catch", "class",
    "const", "continue", "debugger", "default", "delete",
    "do", "else", "enum", "export", "extends",
    "false", "finally", "for", "function",
    "if", "implements", "import", "in", "instanceof", "interface",
    "let", "new", "null", "package", "private",
    "protected", "public", "return", "super", "switch",
    "static", "this", "throw", "try", "true",
    "typeof", "var", "void", "while", "with",
    "yield",
)


class JavascriptCompletionEngine(CompletionEngine):
    """Keyword completion for JavaScript."""

    def supported_languages(self) -> frozenset[str]:
        return frozenset({"javascript", "js"})

    def complete(self, context: CompletionContext) -> list[CompletionItem]:
        if context.is_inside_string() or context.is_inside_comment():
            return []
        prefix = context.token_prefix.lower()
        return [
            CompletionItem(keyword, kind=CompletionKind.KEYWORD)
            for keyword in KEYWORDS
            if keyword.startswith(prefix)
        ]
