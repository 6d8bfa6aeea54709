"""
Tests for completionls/workspace/resolution.py
"""

import threading
import zipfile
from pathlib import Path

from completionls.workspace.resolution import (
    ResolutionContext,
    current_context,
    default_context,
    is_archive,
    set_current_context,
    use_context,
)


class TestResolutionContext:
    """Tests for roots, parents and the fingerprint."""

    def test_reachable_roots_own_then_parent(self, tmp_path):
        a, b, c = tmp_path / "a", tmp_path / "b", tmp_path / "c"
        parent = ResolutionContext([b, c])
        child = ResolutionContext([a, b], parent=parent)

        assert child.reachable_roots() == [a, b, c]

    def test_root_count_includes_parents(self, tmp_path):
        parent = ResolutionContext([tmp_path / "p"])
        child = ResolutionContext([tmp_path / "c1", tmp_path / "c2"], parent=parent)

        assert child.root_count() == 3
        assert parent.root_count() == 1

    def test_add_root_changes_fingerprint(self, tmp_path):
        parent = ResolutionContext()
        child = ResolutionContext(parent=parent)

        parent.add_root(tmp_path)

        assert child.root_count() == 1
        assert child.reachable_roots() == [tmp_path]

    def test_roots_are_a_snapshot(self, tmp_path):
        ctx = ResolutionContext([tmp_path / "a"])
        roots = ctx.roots

        ctx.add_root(tmp_path / "b")

        assert roots == (tmp_path / "a",)
        assert len(ctx.roots) == 2

    def test_concurrent_add_root(self, tmp_path):
        ctx = ResolutionContext()
        threads = [
            threading.Thread(target=ctx.add_root, args=(tmp_path / str(i),))
            for i in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert ctx.root_count() == 20


class TestFindModuleSource:
    """Tests for module lookup in directories and archives."""

    def test_module_file(self, tmp_path):
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "mod.py").write_text("class A:\n    pass\n")

        ctx = ResolutionContext([tmp_path])

        assert ctx.find_module_source("pkg.mod") == "class A:\n    pass\n"

    def test_package_init(self, tmp_path):
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "__init__.py").write_text("VERSION = 1\n")

        assert ResolutionContext([tmp_path]).find_module_source("pkg") == "VERSION = 1\n"

    def test_archive(self, tmp_path):
        wheel = tmp_path / "lib.whl"
        with zipfile.ZipFile(wheel, "w") as archive:
            archive.writestr("lib/core.py", "class Core:\n    pass\n")

        assert is_archive(wheel)
        ctx = ResolutionContext([wheel])
        assert ctx.find_module_source("lib.core") == "class Core:\n    pass\n"

    def test_first_root_wins(self, tmp_path):
        for name, text in (("first", "A = 1\n"), ("second", "A = 2\n")):
            (tmp_path / name).mkdir()
            (tmp_path / name / "mod.py").write_text(text)

        ctx = ResolutionContext([tmp_path / "first"], parent=ResolutionContext([tmp_path / "second"]))

        assert ctx.find_module_source("mod") == "A = 1\n"

    def test_missing_module_and_broken_archive(self, tmp_path):
        broken = tmp_path / "broken.zip"
        broken.write_text("not a zip")

        ctx = ResolutionContext([broken, tmp_path / "missing"])

        assert ctx.find_module_source("anything") is None


class TestCurrentContext:
    """Tests for the per-thread current context."""

    def test_default_is_sys_path(self):
        assert current_context() is default_context()
        assert default_context().name == "sys.path"

    def test_use_context_restores(self):
        ctx = ResolutionContext(name="scoped")

        with use_context(ctx) as active:
            assert active is ctx
            assert current_context() is ctx

        assert current_context() is default_context()

    def test_set_current_context(self):
        ctx = ResolutionContext(name="explicit")
        set_current_context(ctx)
        try:
            assert current_context() is ctx
        finally:
            set_current_context(None)

        assert current_context() is default_context()

    def test_context_is_per_thread(self):
        ctx = ResolutionContext(name="main")
        seen = []

        with use_context(ctx):
            worker = threading.Thread(target=lambda: seen.append(current_context()))
            worker.start()
            worker.join()

        assert seen == [default_context()]

    def test_is_archive_requires_file(self, tmp_path):
        assert not is_archive(tmp_path / "missing.zip")
        assert not is_archive(Path(tmp_path))
