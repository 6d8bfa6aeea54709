"""
Textual type resolution for Python member completion.

Resolves the receiver expression in front of a dot to something whose
members can be listed. There is no parser; resolution is a chain of regex
heuristics tried in order:

1. Literals            'x' -> str, 1.5 -> float, [..] -> list, {a: b} -> dict
2. Call chains         "a".upper() -> str, Path("x") -> Path, obj.method() -> annotated return
3. Variables           x = <expr> / x: Type = ... (last assignment before the caret)
4. Imports             import os.path as osp / from pathlib import Path
5. Builtin type names  str, dict, ...
6. Indexed classes     simple class name -> FQN through the SymbolIndexCache
7. Module paths        os.path, collections.abc

Members of builtin types and of already imported modules come from runtime
introspection; members of library classes and modules come from a regex
extraction over their source text, the same way the symbol index finds
classes.
"""

from __future__ import annotations

import builtins
import inspect
import logging
import re
import sys
import threading
from dataclasses import dataclass, field
from weakref import WeakKeyDictionary

from completionls.completion.context import CompletionContext
from completionls.completion.item import CompletionKind
from completionls.workspace.resolution import ResolutionContext, find_module_source
from completionls.workspace.symbol_index import SymbolIndexCache

logger = logging.getLogger(__name__)

_IDENT = r"[^\W\d]\w*"

# Literal forms, most specific first
_LITERALS: list[tuple[re.Pattern[str], type]] = [
    (re.compile(r"^(?:True|False)$"), bool),
    (re.compile(r"^[rRuUfF]{0,2}(?:'''[\s\S]*'''|\"\"\"[\s\S]*\"\"\"|'[^']*'|\"[^\"]*\")$"), str),
    (re.compile(r"^[rR]?[bB][rR]?(?:'[^']*'|\"[^\"]*\")$"), bytes),
    (re.compile(r"^-?(?:\d[\d_]*\.\d*|\.\d+)(?:[eE][-+]?\d+)?$|^-?\d+[eE][-+]?\d+$"), float),
    (re.compile(r"^-?(?:0[xX][\da-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|\d[\d_]*)$"), int),
    (re.compile(r"^-?(?:\d[\d_]*(?:\.\d*)?|\.\d+)[jJ]$"), complex),
    (re.compile(r"^\{\s*\}$"), dict),
    (re.compile(r"^\{[\s\S]*:[\s\S]*\}$"), dict),
    (re.compile(r"^\{[\s\S]*\}$"), set),
    (re.compile(r"^\[[\s\S]*\]$"), list),
    (re.compile(r"^\([\s\S]*,[\s\S]*\)$|^\(\s*\)$"), tuple),
]

# <receiver>.<method>(<args>)
_METHOD_CALL = re.compile(rf"^(.+)\.({_IDENT})\(([^)]*)\)$", re.DOTALL)

# <Name or dotted.Name>(<args>)
_CONSTRUCTOR_CALL = re.compile(rf"^({_IDENT}(?:\.{_IDENT})*)\(([^)]*)\)$", re.DOTALL)

_DOTTED_NAME = re.compile(rf"^{_IDENT}(?:\.{_IDENT})*$")

_IMPORT = re.compile(
    rf"^[ \t]*import[ \t]+({_IDENT}(?:\.{_IDENT})*)(?:[ \t]+as[ \t]+({_IDENT}))?",
    re.MULTILINE,
)
_FROM_IMPORT = re.compile(
    rf"^[ \t]*from[ \t]+({_IDENT}(?:\.{_IDENT})*)[ \t]+import[ \t]+\(?([^)\n]*)",
    re.MULTILINE,
)

# Return types of frequently chained builtin methods
_BUILTIN_RETURNS: dict[type, dict[str, type]] = {
    str: {
        "split": list, "rsplit": list, "splitlines": list, "partition": tuple,
        "rpartition": tuple, "encode": bytes, "startswith": bool, "endswith": bool,
        "find": int, "rfind": int, "index": int, "rindex": int, "count": int,
        "isdigit": bool, "isalpha": bool, "isspace": bool, "isupper": bool,
        "islower": bool,
    },
    bytes: {"decode": str, "split": list, "hex": str, "count": int, "find": int},
    dict: {"copy": dict, "keys": type({}.keys()), "values": type({}.values()),
           "items": type({}.items())},
    list: {"copy": list, "count": int, "index": int},
    set: {"copy": set, "union": set, "intersection": set, "difference": set},
    int: {"bit_length": int, "to_bytes": bytes},
    float: {"hex": str, "is_integer": bool},
}

_MAX_DEPTH = 8


@dataclass(frozen=True)
class Member:
    """One attribute of a resolved type or module."""

    name: str
    kind: CompletionKind
    is_static: bool = False
    has_params: bool = False
    params: str = ""
    annotation: str = ""


@dataclass(frozen=True)
class ResolvedType:
    """A receiver whose members are known."""

    name: str
    members: tuple[Member, ...] = ()
    is_module: bool = False
    runtime_type: type | None = None
    source_returns: dict[str, str] = field(default_factory=dict, compare=False)


def runtime_members(obj: object) -> tuple[Member, ...]:
    """Public members of a live type or module via introspection."""
    members = []
    is_module = inspect.ismodule(obj)
    for name in sorted(dir(obj)):
        if name.startswith("_"):
            continue
        try:
            raw = inspect.getattr_static(obj, name)
            value = getattr(obj, name)
        except AttributeError:
            continue

        if inspect.isclass(value) and is_module:
            members.append(Member(name, CompletionKind.CLASS, is_static=True))
        elif callable(value):
            is_static = is_module or isinstance(raw, (staticmethod, classmethod)) or (
                type(raw).__name__ == "classmethod_descriptor"
            )
            params, has_params = _runtime_params(value, drop_first=not is_static)
            kind = CompletionKind.FUNCTION if is_module else CompletionKind.METHOD
            members.append(Member(name, kind, is_static, has_params, params))
        else:
            members.append(Member(name, CompletionKind.FIELD, is_static=is_module))
    return tuple(members)


def _runtime_params(func: object, drop_first: bool) -> tuple[str, bool]:
    try:
        params = list(inspect.signature(func).parameters.values())
    except (TypeError, ValueError):
        # No signature available (some C functions); assume arguments
        return "...", True
    if drop_first and params and params[0].name in ("self", "cls"):
        params = params[1:]
    return ", ".join(str(p) for p in params), bool(params)


class PythonSourceMembers:
    """Regex extraction of class and module members from Python source."""

    _def_pattern = re.compile(
        rf"^(?:async[ \t]+)?def[ \t]+({_IDENT})[ \t]*\(([^)]*)\)[ \t]*(?:->[ \t]*([^:]+?))?[ \t]*:"
    )
    # def whose parameter list continues on the next lines
    _def_open_pattern = re.compile(rf"^(?:async[ \t]+)?def[ \t]+({_IDENT})[ \t]*\(")
    _assign_pattern = re.compile(
        rf"^({_IDENT})[ \t]*(?::[ \t]*([^=\n]+?))?[ \t]*(?:(=)(?!=).*)?$"
    )
    _triple_quoted = re.compile(r'"""[\s\S]*?"""|\'\'\'[\s\S]*?\'\'\'')

    def class_members(self, source: str, class_name: str) -> tuple[list[Member], list[str], dict[str, str]]:
        """
        Members of ``class_name`` defined in ``source``.

        Returns (members, base class expressions, method -> return annotation).
        """
        source = self._blank_docstrings(source)
        header = re.compile(
            rf"^([ \t]*)class[ \t]+{re.escape(class_name)}\b[ \t]*(?:\(([^)]*)\))?[ \t]*:",
            re.MULTILINE,
        )
        match = header.search(source)
        if not match:
            return [], [], {}

        bases = [b.strip() for b in (match.group(2) or "").split(",")]
        bases = [b for b in bases if b and "=" not in b]
        body = self._block_lines(source[match.end():], len(match.group(1).expandtabs()))
        members, returns = self._members_of_block(body, is_module=False)
        return members, bases, returns

    def module_members(self, source: str) -> tuple[list[Member], dict[str, str]]:
        source = self._blank_docstrings(source)
        return self._members_of_block(source.splitlines(), is_module=True)

    def _blank_docstrings(self, source: str) -> str:
        # Keep line numbers and indentation of the surrounding code
        return self._triple_quoted.sub(lambda m: "\n" * m.group(0).count("\n"), source)

    @staticmethod
    def _block_lines(rest: str, header_indent: int) -> list[str]:
        """Lines belonging to a block whose header is indented ``header_indent``."""
        lines = rest.splitlines()[1:]
        body = []
        for line in lines:
            if not line.strip():
                body.append(line)
                continue
            if len(line) - len(line.lstrip()) <= header_indent:
                break
            body.append(line)
        return body

    def _members_of_block(self, lines: list[str], is_module: bool) -> tuple[list[Member], dict[str, str]]:
        indent = None
        for line in lines:
            if line.strip() and not line.lstrip().startswith("#"):
                indent = len(line) - len(line.lstrip())
                break
        if indent is None:
            return [], {}

        members: list[Member] = []
        returns: dict[str, str] = {}
        seen: set[str] = set()
        decorators: list[str] = []

        for line in lines:
            if not line.strip() or len(line) - len(line.lstrip()) != indent:
                continue
            stripped = line.strip()
            if stripped.startswith("#"):
                continue

            if stripped.startswith("@"):
                decorators.append(stripped[1:].split("(")[0].strip())
                continue

            if stripped.startswith("class "):
                name = re.match(rf"class\s+({_IDENT})", stripped)
                decorators = []
                if name and is_module and not name.group(1).startswith("_"):
                    self._add(members, seen, Member(name.group(1), CompletionKind.CLASS, True))
                continue

            def_match = self._def_pattern.match(stripped)
            open_match = None if def_match else self._def_open_pattern.match(stripped)
            if open_match:
                name = open_match.group(1)
                is_static = is_module or bool({"staticmethod", "classmethod"} & set(decorators))
                decorators = []
                if not name.startswith("_"):
                    kind = CompletionKind.FUNCTION if is_module else CompletionKind.METHOD
                    self._add(members, seen, Member(name, kind, is_static, True, "..."))
                continue
            if def_match:
                name, raw_params, ret = def_match.groups()
                is_static = is_module or bool(
                    {"staticmethod", "classmethod"} & set(decorators)
                )
                is_property = "property" in decorators or any(
                    d.endswith("cached_property") for d in decorators
                )
                decorators = []
                if name.startswith("_"):
                    continue
                if ret:
                    returns[name] = ret.strip().strip("'\"")
                if is_property:
                    self._add(members, seen, Member(
                        name, CompletionKind.PROPERTY, annotation=returns.get(name, "")
                    ))
                    continue
                params = [p.strip() for p in raw_params.split(",") if p.strip()]
                if not is_module and params and params[0] in ("self", "cls"):
                    params = params[1:]
                params = [p for p in params if p not in ("*", "/")]
                kind = CompletionKind.FUNCTION if is_module else CompletionKind.METHOD
                self._add(members, seen, Member(
                    name, kind, is_static, bool(params), ", ".join(params), returns.get(name, "")
                ))
                continue

            decorators = []
            assign = self._assign_pattern.match(stripped)
            if assign and not assign.group(1).startswith("_") and (
                assign.group(2) or assign.group(3)
            ):
                name, annotation, has_value = assign.groups()
                # Annotated names without a value are instance fields
                is_static = is_module or bool(has_value)
                kind = CompletionKind.CONSTANT if is_module and name.isupper() else CompletionKind.FIELD
                self._add(members, seen, Member(
                    name, kind, is_static, annotation=(annotation or "").strip()
                ))

        return members, returns

    @staticmethod
    def _add(members: list[Member], seen: set[str], member: Member) -> None:
        if member.name not in seen:
            seen.add(member.name)
            members.append(member)


class PythonTypeResolver:
    """Resolves receiver expressions for the Python completion engine."""

    def __init__(self, symbol_index: SymbolIndexCache) -> None:
        self.symbol_index = symbol_index
        self.source_members = PythonSourceMembers()
        # ctx -> ((root count, attached count) when filled, key -> resolved type)
        self._cache: WeakKeyDictionary[
            ResolutionContext, tuple[tuple[int, int], dict[str, ResolvedType | None]]
        ] = WeakKeyDictionary()
        self._lock = threading.Lock()

    def invalidate(self) -> None:
        """Forget every resolved class and module."""
        with self._lock:
            self._cache.clear()

    def _cached(self, ctx: ResolutionContext, key: str, build) -> ResolvedType | None:
        fingerprint = (ctx.root_count(), len(self.symbol_index.attached_roots(ctx)))
        with self._lock:
            entry = self._cache.get(ctx)
            if entry is None or entry[0] != fingerprint:
                entry = (fingerprint, {})
                self._cache[ctx] = entry
            if key in entry[1]:
                return entry[1][key]

        value = build()
        with self._lock:
            entry[1][key] = value
        return value

    def resolve(self, expression: str, context: CompletionContext) -> ResolvedType | None:
        if not expression or not expression.strip():
            return None
        try:
            return self._resolve(expression.strip(), context, 0)
        except RecursionError:
            return None

    def _resolve(self, expr: str, context: CompletionContext, depth: int) -> ResolvedType | None:
        if depth > _MAX_DEPTH:
            return None

        literal = resolve_literal(expr)
        if literal is not None:
            return self.for_runtime_type(literal)

        if expr.endswith(")"):
            resolved = self._resolve_call(expr, context, depth)
            if resolved is not None:
                return resolved

        if expr.isidentifier():
            resolved = self._resolve_variable(expr, context, depth)
            if resolved is not None:
                return resolved

        resolved = self._resolve_import(expr, context)
        if resolved is not None:
            return resolved

        return self.resolve_type_name(expr, context.resolution_context)

    def _resolve_call(self, expr: str, context: CompletionContext, depth: int) -> ResolvedType | None:
        constructor = _CONSTRUCTOR_CALL.match(expr)
        if constructor:
            callee = constructor.group(1)
            resolved = self._resolve(callee, context, depth + 1)
            # Calling a class gives an instance of it
            if resolved is not None and not resolved.is_module:
                return resolved

        method_call = _METHOD_CALL.match(expr)
        if not method_call:
            return None
        receiver = self._resolve(method_call.group(1), context, depth + 1)
        if receiver is None:
            return None
        method = method_call.group(2)

        if receiver.runtime_type is not None:
            returned = _BUILTIN_RETURNS.get(receiver.runtime_type, {}).get(method)
            if returned is None and receiver.runtime_type is str and method in dir(str):
                # Remaining public str methods return str
                returned = str
            if returned is not None:
                return self.for_runtime_type(returned)
            return None

        annotation = receiver.source_returns.get(method)
        if annotation:
            return self._resolve_annotation(annotation, context, depth + 1)
        return None

    def _resolve_variable(self, name: str, context: CompletionContext, depth: int) -> ResolvedType | None:
        pattern = re.compile(
            rf"^[ \t]*{re.escape(name)}[ \t]*(?::[ \t]*([^=\n]+?))?[ \t]*=(?!=)[ \t]*(.+?)[ \t]*$",
            re.MULTILINE,
        )
        last = None
        for match in pattern.finditer(context.text_before_caret()):
            last = match
        if last is None:
            return None

        annotation, value = last.groups()
        if annotation:
            resolved = self._resolve_annotation(annotation, context, depth + 1)
            if resolved is not None:
                return resolved
        if value.strip() == name:
            return None
        return self._resolve(value, context, depth + 1)

    def _resolve_annotation(self, annotation: str, context: CompletionContext, depth: int) -> ResolvedType | None:
        # Optional[X] / X | None -> X; generic parameters are ignored
        text = annotation.strip().strip("'\"")
        optional = re.match(r"^(?:typing\.)?Optional\[(.+)\]$", text)
        if optional:
            text = optional.group(1)
        text = text.split("|")[0].strip()
        text = text.split("[")[0].strip()
        if not _DOTTED_NAME.match(text) or text == "None":
            return None
        return self._resolve(text, context, depth)

    def _resolve_import(self, expr: str, context: CompletionContext) -> ResolvedType | None:
        if not _DOTTED_NAME.match(expr):
            return None
        head, _, rest = expr.partition(".")
        text = context.text_before_caret()
        ctx = context.resolution_context

        for match in _IMPORT.finditer(text):
            module, alias = match.groups()
            if alias == head:
                target = module + ("." + rest if rest else "")
                return self.resolve_module(target, ctx)
            if alias is None and module.split(".")[0] == head:
                return self.resolve_module(expr, ctx)

        for match in _FROM_IMPORT.finditer(text):
            module, names = match.groups()
            for entry in names.split(","):
                parts = entry.split()
                if not parts:
                    continue
                imported = parts[0]
                local = parts[2] if len(parts) == 3 and parts[1] == "as" else imported
                if local != head:
                    continue
                target = f"{module}.{imported}" + ("." + rest if rest else "")
                return self.resolve_module(target, ctx) or self.resolve_fqn(target, ctx)
        return None

    def resolve_type_name(self, name: str, ctx: ResolutionContext) -> ResolvedType | None:
        """Builtin type, indexed class or module path named ``name``."""
        builtin = getattr(builtins, name, None)
        if isinstance(builtin, type):
            return self.for_runtime_type(builtin)

        if name.isidentifier():
            candidates = self.symbol_index.resolve(name, ctx)
            if candidates:
                return self.resolve_fqn(candidates[0], ctx)
            return self.resolve_module(name, ctx)

        return self.resolve_fqn(name, ctx) or self.resolve_module(name, ctx)

    def resolve_fqn(self, fqn: str, ctx: ResolutionContext) -> ResolvedType | None:
        """A class given by its fully qualified name, bases included."""
        return self._cached(ctx, "class:" + fqn, lambda: self._load_class(fqn, ctx, frozenset()))

    def _load_class(self, fqn: str, ctx: ResolutionContext, seen: frozenset[str]) -> ResolvedType | None:
        module, _, class_name = fqn.rpartition(".")
        if not module or fqn in seen:
            return None
        source = self._module_source(module, ctx)
        if source is None:
            loaded = getattr(sys.modules.get(module), class_name, None)
            return self.for_runtime_type(loaded) if inspect.isclass(loaded) else None

        members, bases, returns = self.source_members.class_members(source, class_name)
        if not members and not bases and not re.search(
            rf"^[ \t]*class[ \t]+{re.escape(class_name)}\b", source, re.MULTILINE
        ):
            return None

        inherited: list[Member] = []
        for base in bases:
            base_name = base.split("[")[0].strip()
            simple = base_name.rpartition(".")[2]
            if not simple or simple == "object":
                continue
            base_type = None
            if f"class {simple}" in source:
                base_type = self._load_class(f"{module}.{simple}", ctx, seen | {fqn})
            if base_type is None:
                for candidate in self.symbol_index.resolve(simple, ctx)[:1]:
                    base_type = self._load_class(candidate, ctx, seen | {fqn})
            if base_type is not None:
                inherited.extend(base_type.members)
                returns = {**base_type.source_returns, **returns}

        own = {m.name for m in members}
        merged = members + [m for m in inherited if m.name not in own]
        return ResolvedType(fqn, tuple(merged), source_returns=returns)

    def resolve_module(self, module: str, ctx: ResolutionContext) -> ResolvedType | None:
        """A module from the library roots, or one already imported."""
        return self._cached(ctx, "module:" + module, lambda: self._load_module(module, ctx))

    def _load_module(self, module: str, ctx: ResolutionContext) -> ResolvedType | None:
        source = self._module_source(module, ctx)
        if source is not None:
            members, returns = self.source_members.module_members(source)
            return ResolvedType(module, tuple(members), is_module=True, source_returns=returns)

        loaded = sys.modules.get(module)
        if loaded is not None:
            return ResolvedType(module, runtime_members(loaded), is_module=True)
        return None

    def _module_source(self, module: str, ctx: ResolutionContext) -> str | None:
        source = ctx.find_module_source(module)
        if source is None:
            source = find_module_source(self.symbol_index.attached_roots(ctx), module)
        return source

    @staticmethod
    def for_runtime_type(tp: type) -> ResolvedType:
        return ResolvedType(tp.__name__, runtime_members(tp), runtime_type=tp)


def resolve_literal(expr: str) -> type | None:
    """The builtin type of a literal expression, or None."""
    for pattern, tp in _LITERALS:
        if pattern.match(expr):
            return tp
    return None
