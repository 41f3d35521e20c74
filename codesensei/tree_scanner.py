"""Bounded workspace tree scanner."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from codesensei.schemas import FileNode

logger = logging.getLogger(__name__)

# Hard ceilings for one scan call
MAX_DEPTH = 10
MAX_FILES = 1000

# Large or irrelevant directories that are never listed
SKIP_DIRS = frozenset({
    "node_modules",
    ".git",
    "target",
    "debug",
    "release",
    "build",
    "dist",
    ".vscode",
    ".idea",
    "vendor",
    "venv",
    ".venv",
    "__pycache__",
    ".next",
    ".nuxt",
    "coverage",
})

# Hidden entries that are still shown
VISIBLE_DOTFILES = frozenset({".gitignore", ".env"})

# Binary and library artifacts (extension without the dot, lowercase)
SKIP_EXTENSIONS = frozenset({"dll", "exe", "so", "dylib", "bin", "pdb", "o", "a", "lib"})

DEPTH_LIMIT_SUFFIX = " (depth limit)"


@dataclass
class _ScanState:
    """Counters shared across the whole recursive traversal."""

    base: Path
    max_depth: int
    max_files: int
    file_count: int = 0


def _is_skipped_name(name: str) -> bool:
    """Check if an entry is filtered out by name."""
    if name in SKIP_DIRS:
        return True
    return name.startswith(".") and name not in VISIBLE_DOTFILES


def _has_skipped_extension(name: str) -> bool:
    """Check if a file has a binary/library extension."""
    ext = os.path.splitext(name)[1]
    return ext[1:].lower() in SKIP_EXTENSIONS


def _displayable(text: str) -> str:
    """Replace undecodable bytes (surrogate escapes) so the text is valid UTF-8."""
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def _relative_path(path: str, base: Path) -> str:
    """Path relative to the scan root, always with forward slashes."""
    return _displayable(Path(path).relative_to(base).as_posix())


def _sort_key(node: FileNode) -> tuple[bool, str]:
    # Directories (is_file=False) first, then by name
    return (node.is_file, node.name)


def _scan_dir(directory: Path, depth: int, state: _ScanState) -> list[FileNode]:
    """List one directory, recursing into subdirectories within bounds."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.debug(f"Skipping unreadable directory {directory}: {e}")
        return []

    nodes: list[FileNode] = []

    for entry in entries:
        if state.file_count >= state.max_files:
            break

        name = _displayable(entry.name)
        if _is_skipped_name(name):
            continue

        relative_path = _relative_path(entry.path, state.base)

        try:
            is_dir = entry.is_dir()
        except OSError:
            continue

        if is_dir:
            if depth >= state.max_depth:
                nodes.append(
                    FileNode(
                        name=f"{name}{DEPTH_LIMIT_SUFFIX}",
                        relative_path=relative_path,
                        is_file=False,
                        children=[],
                        depth_limited=True,
                    )
                )
                continue

            children = _scan_dir(Path(entry.path), depth + 1, state)
            nodes.append(
                FileNode(
                    name=name,
                    relative_path=relative_path,
                    is_file=False,
                    children=children,
                )
            )
        else:
            if _has_skipped_extension(name):
                continue

            nodes.append(FileNode(name=name, relative_path=relative_path, is_file=True))
            state.file_count += 1

    nodes.sort(key=_sort_key)
    return nodes


def scan_tree(
    root: str | Path,
    max_depth: int = MAX_DEPTH,
    max_files: int = MAX_FILES,
) -> list[FileNode]:
    """Scan a directory into a bounded FileNode tree.

    Args:
        root: Directory to scan
        max_depth: Directories found at this depth become placeholders
        max_files: Maximum number of file leaves across the whole tree

    Returns:
        Top-level nodes, directories first then files, each group sorted by name.
        A missing or unreadable root yields an empty list.
    """
    base = Path(root)
    if not base.is_dir():
        logger.warning(f"Scan root does not exist or is not a directory: {root}")
        return []

    state = _ScanState(base=base, max_depth=max_depth, max_files=max_files)
    nodes = _scan_dir(base, 0, state)

    if state.file_count >= max_files:
        logger.info(f"File limit of {max_files} reached while scanning {root}, tree is partial")

    return nodes


def count_files(nodes: list[FileNode]) -> int:
    """Count file leaves in a tree."""
    total = 0
    for node in nodes:
        if node.is_file:
            total += 1
        elif node.children:
            total += count_files(node.children)
    return total
