"""
Tests for completionls/workspace/symbol_index.py
"""

import logging
import threading
from unittest.mock import patch

import pytest

from completionls.settings import CompletionSettings
from completionls.workspace import symbol_index as symbol_index_module
from completionls.workspace.resolution import ResolutionContext
from completionls.workspace.symbol_index import SymbolIndexCache


def write(path, text=""):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture
def library(tmp_path):
    """Library root with a package of shapes."""
    root = tmp_path / "lib"
    write(root / "shapes" / "__init__.py")
    write(root / "shapes" / "circle.py", (
        "class Circle:\n"
        "    pass\n"
        "\n"
        "class _Hidden:\n"
        "    pass\n"
    ))
    write(root / "shapes" / "square.py", (
        "import abc\n"
        "\n"
        "class Square(abc.ABC):\n"
        "    class Inner:\n"
        "        pass\n"
    ))
    write(root / "shapes" / "tests" / "test_shapes.py", "class TestShapes:\n    pass\n")
    return root


@pytest.fixture
def extra_library(tmp_path):
    root = tmp_path / "extra"
    write(root / "geometry" / "triangle.py", "class Triangle:\n    pass\n")
    return root


@pytest.fixture
def cache():
    return SymbolIndexCache()


class TestScan:
    """Tests for scanning and caching."""

    def test_indexes_public_top_level_classes(self, cache, library):
        index = cache.scan(ResolutionContext([library]))

        assert dict(index) == {
            "Circle": ("shapes.circle.Circle",),
            "Square": ("shapes.square.Square",),
        }

    def test_second_scan_uses_cache(self, cache, library):
        ctx = ResolutionContext([library])

        first = cache.scan(ctx)
        second = cache.scan(ctx)

        assert first == second
        assert second is first
        assert cache.scan_count == 1

    def test_index_is_read_only(self, cache, library):
        index = cache.scan(ResolutionContext([library]))

        with pytest.raises(TypeError):
            index["Circle"] = ()

    def test_new_root_triggers_rescan(self, cache, library, extra_library):
        ctx = ResolutionContext([library])
        cache.scan(ctx)

        ctx.add_root(extra_library)
        index = cache.scan(ctx)

        assert cache.scan_count == 2
        assert index["Triangle"] == ("geometry.triangle.Triangle",)

    def test_parent_root_change_triggers_rescan(self, cache, library, extra_library):
        parent = ResolutionContext()
        ctx = ResolutionContext([library], parent=parent)
        cache.scan(ctx)

        parent.add_root(extra_library)

        assert "Triangle" in cache.scan(ctx)
        assert cache.scan_count == 2

    def test_contexts_are_cached_separately(self, cache, library, extra_library):
        first = ResolutionContext([library])
        second = ResolutionContext([extra_library])

        assert "Circle" in cache.scan(first)
        assert "Circle" not in cache.scan(second)
        assert cache.is_cached(first) and cache.is_cached(second)

    def test_uses_current_context_by_default(self, cache, library):
        from completionls.workspace.resolution import use_context

        with use_context(ResolutionContext([library])):
            assert cache.resolve("Circle") == ["shapes.circle.Circle"]

    def test_concurrent_scans_agree(self, cache, library):
        ctx = ResolutionContext([library])
        results = []
        threads = [
            threading.Thread(target=lambda: results.append(dict(cache.scan(ctx))))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert all(result == results[0] for result in results)


class TestOrdering:
    """Tests for candidate ordering and ambiguity."""

    def test_priority_packages_first(self, cache, tmp_path):
        write(tmp_path / "a" / "aaa_vendor" / "odict.py", "class OrderedDict:\n    pass\n")
        write(tmp_path / "b" / "collections" / "__init__.py", "class OrderedDict:\n    pass\n")
        ctx = ResolutionContext([tmp_path / "a", tmp_path / "b"])

        assert cache.resolve("OrderedDict", ctx) == [
            "collections.OrderedDict",
            "aaa_vendor.odict.OrderedDict",
        ]

    def test_lexical_order_outside_priority_table(self, cache, tmp_path):
        write(tmp_path / "zeta" / "models.py", "class Model:\n    pass\n")
        write(tmp_path / "alpha" / "models.py", "class Model:\n    pass\n")

        assert cache.resolve("Model", ResolutionContext([tmp_path])) == [
            "alpha.models.Model",
            "zeta.models.Model",
        ]

    def test_custom_priority(self, tmp_path):
        write(tmp_path / "alpha" / "models.py", "class Model:\n    pass\n")
        write(tmp_path / "zeta" / "models.py", "class Model:\n    pass\n")
        cache = SymbolIndexCache(CompletionSettings(package_priority=("zeta",)))

        assert cache.resolve("Model", ResolutionContext([tmp_path]))[0] == "zeta.models.Model"

    def test_first_root_shadows_same_module(self, cache, tmp_path):
        write(tmp_path / "one" / "pkg.py", "class Thing:\n    pass\n")
        write(tmp_path / "two" / "pkg.py", "class Thing:\n    pass\n")
        ctx = ResolutionContext([tmp_path / "one", tmp_path / "two"])

        assert cache.resolve("Thing", ctx) == ["pkg.Thing"]

    def test_unknown_name(self, cache, library):
        assert cache.resolve("Nothing", ResolutionContext([library])) == []


class TestAddLibraries:
    """Tests for merging libraries into a cached index."""

    def test_new_names_become_resolvable(self, cache, library, extra_library):
        ctx = ResolutionContext([library])
        cache.scan(ctx)

        cache.add_libraries(ctx, [extra_library])

        assert cache.resolve("Triangle", ctx) == ["geometry.triangle.Triangle"]
        assert cache.resolve("Circle", ctx) == ["shapes.circle.Circle"]
        assert cache.scan_count == 1
        assert cache.attached_roots(ctx) == (extra_library,)

    def test_merge_keeps_existing_candidates(self, cache, library, tmp_path):
        write(tmp_path / "other" / "collections" / "__init__.py", "class Circle:\n    pass\n")
        ctx = ResolutionContext([library])

        cache.add_libraries(ctx, [tmp_path / "other"])

        assert cache.resolve("Circle", ctx) == [
            "collections.Circle",
            "shapes.circle.Circle",
        ]

    def test_without_prior_scan(self, cache, library, extra_library):
        ctx = ResolutionContext([library])

        cache.add_libraries(ctx, [extra_library])

        assert "Circle" in cache.scan(ctx)
        assert "Triangle" in cache.scan(ctx)
        assert cache.scan_count == 1

    def test_missing_paths_ignored(self, cache, library, tmp_path):
        ctx = ResolutionContext([library])

        cache.add_libraries(ctx, [tmp_path / "missing"])
        cache.add_libraries(ctx, None)

        assert not cache.is_cached(ctx)
        assert cache.scan_count == 0

    def test_merge_survives_slower_concurrent_scan(self, cache, library, extra_library):
        ctx = ResolutionContext([library])
        original = symbol_index_module.iter_module_sources
        started = threading.Event()
        release = threading.Event()
        calls = []

        def gated(root, skip_dirs):
            calls.append(root)
            if len(calls) == 1:
                started.set()
                release.wait(5)
            yield from original(root, skip_dirs)

        with patch.object(symbol_index_module, "iter_module_sources", side_effect=gated):
            slow_scan = threading.Thread(target=cache.scan, args=(ctx,))
            slow_scan.start()
            assert started.wait(5)

            cache.add_libraries(ctx, [extra_library])
            assert cache.resolve("Triangle", ctx) == ["geometry.triangle.Triangle"]

            release.set()
            slow_scan.join(5)

        assert not slow_scan.is_alive()
        assert cache.resolve("Triangle", ctx) == ["geometry.triangle.Triangle"]
        assert cache.attached_roots(ctx) == (extra_library,)

    def test_rescan_drops_merged_libraries(self, cache, library, extra_library, tmp_path):
        ctx = ResolutionContext([library])
        cache.add_libraries(ctx, [extra_library])

        ctx.add_root(tmp_path / "unrelated")

        assert "Triangle" not in cache.scan(ctx)
        assert cache.attached_roots(ctx) == ()


class TestScanPackages:

    def test_restricted_to_packages(self, cache, library, extra_library):
        ctx = ResolutionContext([library, extra_library])

        index = cache.scan_packages(ctx, "geometry")

        assert dict(index) == {"Triangle": ("geometry.triangle.Triangle",)}
        assert not cache.is_cached(ctx)
        assert cache.scan_count == 0


class TestInvalidation:

    def test_invalidate_one_context(self, cache, library, extra_library):
        first = ResolutionContext([library])
        second = ResolutionContext([extra_library])
        cache.scan(first)
        cache.scan(second)

        cache.invalidate(first)
        cache.invalidate(None)

        assert not cache.is_cached(first)
        assert cache.is_cached(second)

    def test_invalidate_all(self, cache, library):
        ctx = ResolutionContext([library])
        cache.scan(ctx)

        cache.invalidate_all()
        cache.scan(ctx)

        assert cache.scan_count == 2


class TestFailures:
    """Scan errors are logged and never raised."""

    def test_failing_root_is_skipped(self, cache, library, extra_library, caplog):
        real = symbol_index_module.iter_module_sources

        def flaky(root, skip_dirs):
            if root == library:
                raise OSError("unreadable")
            return real(root, skip_dirs)

        ctx = ResolutionContext([library, extra_library])
        with patch.object(symbol_index_module, "iter_module_sources", side_effect=flaky):
            with caplog.at_level(logging.WARNING):
                index = cache.scan(ctx)

        assert dict(index) == {"Triangle": ("geometry.triangle.Triangle",)}
        assert "Error scanning library root" in caplog.text

    def test_failing_context_gives_empty_index(self, cache, caplog):
        class BrokenContext(ResolutionContext):
            def reachable_roots(self):
                raise RuntimeError("no roots")

        with caplog.at_level(logging.WARNING):
            index = cache.scan(BrokenContext())

        assert dict(index) == {}
        assert "Symbol scan failed" in caplog.text
