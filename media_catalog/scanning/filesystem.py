import os
import logging
from pathlib import Path
from typing import Iterator, Optional, Set, Union

from .. import config


def path_to_text(path: Union[str, bytes, os.PathLike]) -> Optional[str]:
    """
    Returns the catalog text form of a path, or None when the path cannot be
    represented as UTF-8 (e.g. undecodable bytes surfaced as surrogates).
    """
    text = os.fsdecode(path)
    try:
        text.encode('utf-8')
    except UnicodeEncodeError:
        return None
    return text


def is_ignored(path: Path) -> bool:
    """Hidden files, AppleDouble '._' files and OS junk are never ingested."""
    name = path.name
    return name.startswith('.') or name in config.IGNORED_NAMES


def in_hidden_dir(path: Path, root: Path) -> bool:
    """True if a directory between root and path is hidden. iter_files never enters those."""
    try:
        rel = path.relative_to(root)
    except ValueError:
        return False
    return any(part.startswith('.') for part in rel.parts[:-1])


class DiskScanner:
    def __init__(self, extensions: Set[str]):
        self.extensions = extensions

    def is_supported(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions and not is_ignored(path)

    def iter_media_files(self, root: Path) -> Iterator[Path]:
        """Yields every supported file under root, in a stable order."""
        for path in self.iter_files(root):
            if self.is_supported(path):
                yield path

    def iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except (OSError, PermissionError):
                logging.warning(f"Cannot read directory: {current}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                if e.is_dir(follow_symlinks=False):
                    if not e.name.startswith('.'):
                        dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False):
                    files.append(Path(e.path))

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
