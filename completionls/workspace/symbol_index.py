"""
SymbolIndexCache: simple name -> fully qualified names, per resolution context.

The index is built by walking every library root reachable from a
resolution context and extracting the public top-level classes of each
module. Results are cached per context (by identity) together with a
staleness fingerprint, the number of reachable roots at build time. A cached
entry is valid exactly while the context still reports the same number of
roots; any mismatch triggers a full rebuild.

Usage:
    cache = SymbolIndexCache()
    index = cache.scan(ctx)            # {"OrderedDict": ("collections.OrderedDict",)}
    cache.resolve("Path", ctx)         # ["pathlib.Path", ...]
    cache.add_libraries(ctx, [wheel])  # merge a freshly attached library
    cache.invalidate(ctx)
"""

from __future__ import annotations

import logging
import re
import threading
import time
import weakref
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from completionls.settings import CompletionSettings
from completionls.workspace.resolution import ResolutionContext, current_context
from completionls.workspace.utils import iter_module_sources

logger = logging.getLogger(__name__)

SymbolIndex = Mapping[str, tuple[str, ...]]

EMPTY_INDEX: SymbolIndex = MappingProxyType({})


@dataclass(frozen=True)
class SymbolIndexEntry:
    """Cached index plus the fingerprint it was built against."""

    index: SymbolIndex
    fingerprint: int
    # Libraries merged in by add_libraries, not part of the context
    attached: tuple[Path, ...] = ()


class SymbolIndexCache:
    """Thread-safe cache of symbol indexes keyed by resolution context."""

    # Top-level (column 0) class statements; nested classes are indented
    _class_pattern = re.compile(r"^class\s+([A-Za-z_]\w*)\s*[(:]", re.MULTILINE)

    def __init__(self, settings: CompletionSettings | None = None) -> None:
        self.settings = settings or CompletionSettings()
        self._entries: weakref.WeakKeyDictionary[ResolutionContext, SymbolIndexEntry] = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()
        self.scan_count = 0

    def scan(self, ctx: ResolutionContext | None = None) -> SymbolIndex:
        """
        Return the index for ``ctx``, rebuilding it if the cached entry is
        missing or stale.
        """
        ctx = ctx or current_context()
        fingerprint = ctx.root_count()

        with self._lock:
            entry = self._entries.get(ctx)
        if entry is not None and entry.fingerprint == fingerprint:
            return entry.index

        with self._lock:
            self.scan_count += 1

        try:
            roots = ctx.reachable_roots()
        except Exception as e:
            logger.warning("Symbol scan failed for %r: %s", ctx, e)
            roots = []

        start = time.monotonic()
        index = self._freeze(self._build_index(roots))
        logger.debug(
            "Symbol scan of %r completed: %d names in %.1f ms",
            ctx, len(index), (time.monotonic() - start) * 1000,
        )

        with self._lock:
            current = self._entries.get(ctx)
            # add_libraries merged into a fresh base while this scan ran
            if current is not None and current.attached and current.fingerprint == fingerprint:
                return current.index
            self._entries[ctx] = SymbolIndexEntry(index, fingerprint)
        return index

    def scan_packages(
        self, ctx: ResolutionContext | None, *packages: str
    ) -> SymbolIndex:
        """Uncached scan restricted to names under the given packages."""
        ctx = ctx or current_context()
        try:
            roots = ctx.reachable_roots()
        except Exception as e:
            logger.warning("Package scan failed for %r: %s", ctx, e)
            return EMPTY_INDEX
        return self._freeze(self._build_index(roots, packages))

    def add_libraries(
        self, ctx: ResolutionContext | None, paths: Iterable[Path | str] | None
    ) -> None:
        """
        Merge newly attached libraries into the cached index for ``ctx``.

        Only the given paths are walked. Paths that do not exist are ignored.
        Names already in the index keep their candidates; new candidates are
        appended and each affected list is re-sorted.
        """
        ctx = ctx or current_context()
        roots = [Path(p) for p in paths or () if Path(p).exists()]
        if not roots:
            return

        # Make sure there is a complete base to merge into
        self.scan(ctx)
        additions = self._build_index(roots)

        with self._lock:
            current = self._entries.get(ctx)
            if current is None:
                merged: dict[str, list[str]] = {}
                fingerprint = ctx.root_count()
                attached: tuple[Path, ...] = ()
            else:
                merged = {name: list(fqns) for name, fqns in current.index.items()}
                fingerprint = current.fingerprint
                attached = current.attached
            attached += tuple(r for r in roots if r not in attached)

            for name, fqns in additions.items():
                candidates = merged.setdefault(name, [])
                candidates.extend(f for f in fqns if f not in candidates)
                candidates.sort(key=self._priority_key)

            self._entries[ctx] = SymbolIndexEntry(self._freeze(merged), fingerprint, attached)

        logger.debug("Merged %d names from %d libraries into %r",
                     len(additions), len(roots), ctx)

    def resolve(self, simple_name: str, ctx: ResolutionContext | None = None) -> list[str]:
        """Candidate fully qualified names for ``simple_name``, best first."""
        return list(self.scan(ctx).get(simple_name, ()))

    def attached_roots(self, ctx: ResolutionContext | None = None) -> tuple[Path, ...]:
        """Roots merged into the current index of ``ctx`` by add_libraries."""
        ctx = ctx or current_context()
        with self._lock:
            entry = self._entries.get(ctx)
        if entry is None or entry.fingerprint != ctx.root_count():
            return ()
        return entry.attached

    def invalidate(self, ctx: ResolutionContext | None) -> None:
        """Drop the cached index of one context."""
        if ctx is None:
            return
        with self._lock:
            self._entries.pop(ctx, None)

    def invalidate_all(self) -> None:
        """Drop every cached index."""
        with self._lock:
            self._entries.clear()

    def is_cached(self, ctx: ResolutionContext) -> bool:
        with self._lock:
            return ctx in self._entries

    def _build_index(
        self, roots: Iterable[Path], packages: tuple[str, ...] = ()
    ) -> dict[str, list[str]]:
        index: dict[str, list[str]] = {}
        seen: set[str] = set()

        for root in roots:
            try:
                for module, source in iter_module_sources(root, self.settings.skip_dirs):
                    if packages and not _in_packages(module, packages):
                        continue
                    for match in self._class_pattern.finditer(source):
                        class_name = match.group(1)
                        if class_name.startswith("_"):
                            continue
                        fqn = f"{module}.{class_name}"
                        # First root providing a module shadows later ones
                        if fqn in seen:
                            continue
                        seen.add(fqn)
                        index.setdefault(class_name, []).append(fqn)
            except Exception as e:
                logger.warning("Error scanning library root %s: %s", root, e)

        for fqns in index.values():
            fqns.sort(key=self._priority_key)
        return index

    def _priority_key(self, fqn: str) -> tuple[int, str]:
        priority = self.settings.package_priority
        for i, package in enumerate(priority):
            if fqn.startswith(package + "."):
                return i, fqn
        return len(priority), fqn

    @staticmethod
    def _freeze(index: Mapping[str, Iterable[str]]) -> SymbolIndex:
        return MappingProxyType({name: tuple(fqns) for name, fqns in index.items()})


def _in_packages(module: str, packages: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(p + ".") for p in packages)
