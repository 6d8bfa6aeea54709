import os
import zipfile
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

from completionls.workspace.resolution import is_archive


def module_name_for(relative: PurePosixPath) -> str | None:
    """
    Map a relative ``.py`` path to a dotted module name.

    ``pkg/__init__.py`` names the package ``pkg``; paths with segments that
    are not identifiers (``site-packages``, ``foo-1.0.dist-info``) have no
    importable name.
    """
    parts = list(relative.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    if not parts or not all(p.isidentifier() for p in parts):
        return None
    return ".".join(parts)


def iter_module_sources(
    root: Path, skip_dirs: frozenset[str] = frozenset()
) -> Iterator[tuple[str, str]]:
    """
    Yield ``(module_name, source_text)`` for every module under a library root.

    The root may be a directory or a zip/wheel archive. Unreadable files are
    skipped; an unreadable root raises.
    """
    if is_archive(root):
        with zipfile.ZipFile(root) as archive:
            for entry in sorted(archive.namelist()):
                if not entry.endswith(".py"):
                    continue
                relative = PurePosixPath(entry)
                if any(part in skip_dirs for part in relative.parts[:-1]):
                    continue
                module = module_name_for(relative)
                if module is None:
                    continue
                yield module, archive.read(entry).decode("utf-8", errors="ignore")
        return

    if not root.is_dir():
        return

    for dirpath, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in skip_dirs)
        for file in sorted(files):
            if not file.endswith(".py"):
                continue
            path = Path(dirpath) / file
            module = module_name_for(PurePosixPath(path.relative_to(root).as_posix()))
            if module is None:
                continue
            try:
                yield module, path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                continue
