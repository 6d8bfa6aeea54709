"""
Python completion engine.

Three kinds of positions are completed:

- import statements      ``import a.b|``, ``from a.b|``, ``from a.b import X|``
- member access          ``receiver.partial|`` via PythonTypeResolver
- everything else        keywords, builtins and indexed class names

Class names come from the SymbolIndexCache of the request's resolution
context, so a library becomes visible as soon as it is attached to that
context (or merged in with SymbolIndexCache.add_libraries).
"""

from __future__ import annotations

import builtins
import keyword
import logging
import re

from completionls.completion.context import CompletionContext
from completionls.completion.engine import CompletionEngine
from completionls.completion.item import CompletionItem, CompletionKind
from completionls.engines.python_types import Member, PythonTypeResolver, ResolvedType
from completionls.settings import CompletionSettings
from completionls.workspace.resolution import ResolutionContext
from completionls.workspace.symbol_index import SymbolIndexCache

logger = logging.getLogger(__name__)

_MODULE_PATH = r"[^\W\d]?[\w.]*"

_IMPORT_LINE = re.compile(rf"^[ \t]*import[ \t]+(?:.*,[ \t]*)?({_MODULE_PATH})\Z")
_FROM_LINE = re.compile(rf"^[ \t]*from[ \t]+({_MODULE_PATH})\Z")
_FROM_IMPORT_LINE = re.compile(
    rf"^[ \t]*from[ \t]+([\w.]+)[ \t]+import[ \t]+\(?(?:[^#]*,[ \t]*)?(\w*)\Z"
)

# Priorities; lower sorts first
KEYWORD_PRIORITY = 50
PACKAGE_PRIORITY = 50
STATIC_FIELD_PRIORITY = 60
STATIC_METHOD_PRIORITY = 70
INSTANCE_FIELD_PRIORITY = 80
INSTANCE_METHOD_PRIORITY = 90
BUILTIN_PRIORITY = 80
BUILTIN_TYPE_PRIORITY = 90
CLASS_PRIORITY = 100

_FIELD_KINDS = frozenset({
    CompletionKind.FIELD, CompletionKind.PROPERTY, CompletionKind.CONSTANT,
})


def _builtin_names() -> tuple[list[str], list[str]]:
    functions, types = [], []
    for name in sorted(dir(builtins)):
        if name.startswith("_"):
            continue
        value = getattr(builtins, name)
        if isinstance(value, type):
            types.append(name)
        elif callable(value):
            functions.append(name)
    return functions, types


BUILTIN_FUNCTIONS, BUILTIN_TYPES = _builtin_names()


class PythonCompletionEngine(CompletionEngine):
    """Completes imports, members, keywords and class names in Python."""

    def __init__(
        self,
        symbol_index: SymbolIndexCache | None = None,
        settings: CompletionSettings | None = None,
    ) -> None:
        self.symbol_index = symbol_index or SymbolIndexCache(settings)
        self.settings = settings or self.symbol_index.settings
        self.resolver = PythonTypeResolver(self.symbol_index)

    def supported_languages(self) -> frozenset[str]:
        return frozenset({"python", "py"})

    def invalidate_cache(self) -> None:
        self.resolver.invalidate()

    def complete(self, context: CompletionContext) -> list[CompletionItem]:
        if context.is_inside_string() or context.is_inside_comment():
            return []

        line = context.text_before_caret().rpartition("\n")[2]
        items = self._complete_import(line, context.resolution_context)
        if items is not None:
            return items

        if context.expression_before:
            return self._complete_members(context)

        return self._complete_names(context)

    # Imports

    def _complete_import(self, line: str, ctx: ResolutionContext) -> list[CompletionItem] | None:
        """Suggestions for an import statement; None when not on one."""
        match = _FROM_IMPORT_LINE.match(line)
        if match:
            return self._complete_imported_names(match.group(1), match.group(2), ctx)

        match = _IMPORT_LINE.match(line) or _FROM_LINE.match(line)
        if match:
            return self._complete_module_path(match.group(1), ctx)
        return None

    def _complete_module_path(self, typed: str, ctx: ResolutionContext) -> list[CompletionItem]:
        parent, _, partial = typed.rpartition(".")
        depth = parent.count(".") + 1 if parent else 0
        lowered = partial.lower()

        segments = set()
        for module in self._indexed_modules(ctx):
            parts = module.split(".")
            if len(parts) <= depth or (parent and ".".join(parts[:depth]) != parent):
                continue
            if parts[depth].lower().startswith(lowered):
                segments.add(parts[depth])

        items = [
            CompletionItem(segment, kind=CompletionKind.MODULE, detail="package",
                           sort_priority=PACKAGE_PRIORITY)
            for segment in segments
        ]
        return self._ordered(items, self.settings.import_suggestion_cap)

    def _complete_imported_names(
        self, module: str, partial: str, ctx: ResolutionContext
    ) -> list[CompletionItem]:
        lowered = partial.lower()
        items: list[CompletionItem] = []
        names: set[str] = set()

        for name, fqns in self.symbol_index.scan(ctx).items():
            if not name.lower().startswith(lowered):
                continue
            for fqn in fqns:
                if fqn.rpartition(".")[0] == module:
                    names.add(name)
                    items.append(CompletionItem(
                        name, fqn, CompletionKind.CLASS, sort_priority=CLASS_PRIORITY
                    ))

        prefix = module + "."
        for submodule in self._indexed_modules(ctx):
            if submodule.startswith(prefix):
                segment = submodule[len(prefix):].split(".")[0]
                if segment.lower().startswith(lowered) and segment not in names:
                    names.add(segment)
                    items.append(CompletionItem(
                        segment, kind=CompletionKind.MODULE, detail="package",
                        sort_priority=PACKAGE_PRIORITY,
                    ))

        resolved = self.resolver.resolve_module(module, ctx)
        if resolved is not None:
            for member in resolved.members:
                if member.name in names or not member.name.lower().startswith(lowered):
                    continue
                names.add(member.name)
                items.append(self._member_item(member, resolved, static_context=True))

        return self._ordered(items, self.settings.import_suggestion_cap)

    def _indexed_modules(self, ctx: ResolutionContext) -> set[str]:
        return {
            fqn.rpartition(".")[0]
            for fqns in self.symbol_index.scan(ctx).values()
            for fqn in fqns
        }

    # Member access

    def _complete_members(self, context: CompletionContext) -> list[CompletionItem]:
        resolved = self.resolver.resolve(context.expression_before, context)
        if resolved is None:
            logger.debug("Unresolved receiver: %s", context.expression_before)
            return []

        static_context = resolved.is_module or context.is_static_context()
        prefix = context.token_prefix.lower()
        items = [
            self._member_item(member, resolved, static_context)
            for member in resolved.members
            if member.name.lower().startswith(prefix)
        ]
        return self._ordered(items)

    def _member_item(self, member: Member, owner: ResolvedType, static_context: bool) -> CompletionItem:
        is_field = member.kind in _FIELD_KINDS
        if static_context and member.is_static:
            priority = STATIC_FIELD_PRIORITY if is_field else STATIC_METHOD_PRIORITY
        else:
            priority = INSTANCE_FIELD_PRIORITY if is_field else INSTANCE_METHOD_PRIORITY

        if member.kind == CompletionKind.CLASS:
            return CompletionItem(
                member.name, kind=CompletionKind.CLASS, detail=f"{owner.name}.{member.name}",
                sort_priority=priority,
            )
        if is_field:
            return CompletionItem(
                member.name, kind=member.kind, detail=member.annotation or None,
                sort_priority=priority,
            )
        return CompletionItem(
            member.name,
            f"{member.name}({member.params})",
            member.kind,
            detail=member.annotation or owner.name,
            insert_text=f"{member.name}()",
            sort_priority=priority,
            cursor_offset=-1 if member.has_params else 0,
        )

    # Plain names

    def _complete_names(self, context: CompletionContext) -> list[CompletionItem]:
        prefix = context.token_prefix
        lowered = prefix.lower()
        items = [
            CompletionItem(kw, kind=CompletionKind.KEYWORD, sort_priority=KEYWORD_PRIORITY)
            for kw in keyword.kwlist
            if kw.lower().startswith(lowered)
        ]

        if prefix:
            items.extend(
                CompletionItem(
                    name, f"{name}(...)", CompletionKind.FUNCTION, detail="builtin",
                    insert_text=f"{name}()", sort_priority=BUILTIN_PRIORITY, cursor_offset=-1,
                )
                for name in BUILTIN_FUNCTIONS
                if name.lower().startswith(lowered)
            )
            items.extend(
                CompletionItem(name, kind=CompletionKind.CLASS, detail="builtins",
                               sort_priority=BUILTIN_TYPE_PRIORITY)
                for name in BUILTIN_TYPES
                if name.lower().startswith(lowered)
            )

        items.extend(self._class_items(lowered, context.resolution_context))
        return self._ordered(items)

    def _class_items(self, lowered: str, ctx: ResolutionContext) -> list[CompletionItem]:
        items = []
        for name, fqns in self.symbol_index.scan(ctx).items():
            if not name.lower().startswith(lowered):
                continue
            for fqn in fqns:
                items.append(CompletionItem(
                    name, kind=CompletionKind.CLASS, detail=fqn, sort_priority=CLASS_PRIORITY
                ))
        # Stable: candidates of one name keep their index order
        items.sort(key=lambda item: item.completion.lower())
        return items[: self.settings.class_suggestion_cap]

    @staticmethod
    def _ordered(items: list[CompletionItem], cap: int | None = None) -> list[CompletionItem]:
        seen = set()
        unique = []
        for item in items:
            key = (item.completion, item.kind, item.detail)
            if key not in seen:
                seen.add(key)
                unique.append(item)
        unique.sort(key=lambda item: (item.sort_priority, item.completion.lower()))
        return unique if cap is None else unique[:cap]
