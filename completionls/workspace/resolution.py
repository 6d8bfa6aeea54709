"""
Resolution contexts.

A resolution context is the set of libraries visible when resolving a simple
name to a fully qualified one: an ordered list of library roots (directories
or zip/wheel archives) plus an optional parent context. Roots can be attached
at runtime, which is how dynamically added dependencies become visible.

The staleness fingerprint of a context is the number of roots reachable from
it (its own plus its parents').
"""

from __future__ import annotations

import sys
import threading
import zipfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

ARCHIVE_SUFFIXES = (".zip", ".whl", ".egg", ".pyz")


def is_archive(path: Path) -> bool:
    return path.suffix.lower() in ARCHIVE_SUFFIXES and path.is_file()


class ResolutionContext:
    """Ordered library roots with an optional parent chain."""

    def __init__(
        self,
        roots: Iterable[Path | str] = (),
        parent: ResolutionContext | None = None,
        name: str | None = None,
    ) -> None:
        self.parent = parent
        self.name = name or f"context-{id(self):x}"
        self._lock = threading.Lock()
        self._roots: tuple[Path, ...] = tuple(Path(r) for r in roots)

    def __repr__(self) -> str:
        return f"ResolutionContext({self.name!r}, roots={len(self._roots)})"

    @property
    def roots(self) -> tuple[Path, ...]:
        """Snapshot of this context's own roots."""
        return self._roots

    def add_root(self, root: Path | str) -> None:
        """Attach a library root; changes the staleness fingerprint."""
        with self._lock:
            self._roots = self._roots + (Path(root),)

    def reachable_roots(self) -> list[Path]:
        """Own roots followed by the parent chain's, first occurrence wins."""
        seen: set[Path] = set()
        result: list[Path] = []
        ctx: ResolutionContext | None = self
        while ctx is not None:
            for root in ctx.roots:
                if root not in seen:
                    seen.add(root)
                    result.append(root)
            ctx = ctx.parent
        return result

    def root_count(self) -> int:
        """Number of roots reachable from this context, parents included."""
        count = 0
        ctx: ResolutionContext | None = self
        while ctx is not None:
            count += len(ctx.roots)
            ctx = ctx.parent
        return count

    def find_module_source(self, module: str) -> str | None:
        """
        Return the source text of ``module`` from the first reachable root
        that provides it, or None.
        """
        return find_module_source(self.reachable_roots(), module)


def find_module_source(roots: Iterable[Path], module: str) -> str | None:
    """Source text of ``module`` from the first of ``roots`` providing it."""
    parts = module.split(".")
    candidates = [
        "/".join(parts) + ".py",
        "/".join(parts + ["__init__.py"]),
    ]

    for root in roots:
        try:
            if is_archive(root):
                with zipfile.ZipFile(root) as archive:
                    names = set(archive.namelist())
                    for candidate in candidates:
                        if candidate in names:
                            return archive.read(candidate).decode(
                                "utf-8", errors="ignore"
                            )
            elif root.is_dir():
                for candidate in candidates:
                    path = root / candidate
                    if path.is_file():
                        return path.read_text(encoding="utf-8", errors="ignore")
        except (OSError, zipfile.BadZipFile):
            continue

    return None


_default_context: ResolutionContext | None = None
_default_lock = threading.Lock()
_local = threading.local()


def default_context() -> ResolutionContext:
    """Process-wide context built lazily from ``sys.path``."""
    global _default_context
    with _default_lock:
        if _default_context is None:
            roots = [Path(p) for p in sys.path if p]
            _default_context = ResolutionContext(roots, name="sys.path")
        return _default_context


def current_context() -> ResolutionContext:
    """The calling thread's current resolution context."""
    ctx = getattr(_local, "context", None)
    return ctx if ctx is not None else default_context()


def set_current_context(ctx: ResolutionContext | None) -> None:
    """Set (or with None, clear) the calling thread's resolution context."""
    _local.context = ctx


@contextmanager
def use_context(ctx: ResolutionContext) -> Iterator[ResolutionContext]:
    """Temporarily make ``ctx`` the calling thread's resolution context."""
    previous = getattr(_local, "context", None)
    _local.context = ctx
    try:
        yield ctx
    finally:
        _local.context = previous
