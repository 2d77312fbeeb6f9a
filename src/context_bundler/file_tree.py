"""
context-bundler — file tree building and rendering

File: src/context_bundler/file_tree.py

Purpose
- Convert a flat list of POSIX relative paths into a directory tree and a
  connector-style text rendering for the bundle's file map.

Functional requirements
- Flattening a built tree reproduces the input path set exactly.
- Rendering is a pure function of the tree: directories (suffixed ``/``)
  before files, each level sorted by name.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

_BRANCH = "├── "
_LAST = "└── "
_PIPE = "│   "
_SPACE = "    "

FILES_KEY = "_files"

# Directory names of the form `_+files` gain one leading underscore in
# `to_dict` so none of them can shadow the file list.
_FILES_KEY_LIKE = re.compile(r"_+files")


@dataclass(slots=True)
class FileTreeNode:
    """One directory level: child directories plus file names at this level."""

    directories: dict[str, FileTreeNode] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)

    def child(self, name: str) -> FileTreeNode:
        node = self.directories.get(name)
        if node is None:
            node = FileTreeNode()
            self.directories[name] = node
        return node

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON shape ``{"dir": {...}, "_files": [...]}``.

        A directory literally named ``_files`` is keyed ``__files`` (and
        ``__files`` becomes ``___files``), keeping the mapping reversible.
        """

        payload: dict[str, Any] = {
            directory_key(name): self.directories[name].to_dict()
            for name in sorted(self.directories)
        }
        if self.files:
            payload[FILES_KEY] = sorted(self.files)
        return payload


def directory_key(name: str) -> str:
    """Return the JSON key for a directory called ``name``."""

    return f"_{name}" if _FILES_KEY_LIKE.fullmatch(name) else name


def build_file_tree(paths: Iterable[str]) -> FileTreeNode:
    """Build a tree from relative paths, attaching each leaf to its parent."""

    root = FileTreeNode()
    for path in paths:
        parts = [part for part in path.split("/") if part]
        if not parts:
            continue
        current = root
        for part in parts[:-1]:
            current = current.child(part)
        if parts[-1] not in current.files:
            current.files.append(parts[-1])
    return root


def flatten_file_tree(tree: FileTreeNode, prefix: str = "") -> list[str]:
    """Return every file path in ``tree``, depth-first, directories first."""

    paths: list[str] = []
    for name in sorted(tree.directories):
        paths.extend(flatten_file_tree(tree.directories[name], f"{prefix}{name}/"))
    for file_name in sorted(tree.files):
        paths.append(f"{prefix}{file_name}")
    return paths


def render_file_tree(tree: FileTreeNode) -> str:
    """Render ``tree`` as an indented listing with box-drawing connectors."""

    lines: list[str] = []
    _render_node(tree, "", lines)
    return "".join(f"{line}\n" for line in lines)


def format_file_tree(paths: Iterable[str]) -> str:
    """Build and render in one step."""

    return render_file_tree(build_file_tree(paths))


def _render_node(node: FileTreeNode, prefix: str, lines: list[str]) -> None:
    directory_names = sorted(node.directories)
    file_names = sorted(node.files)

    for index, name in enumerate(directory_names):
        is_last = index == len(directory_names) - 1 and not file_names
        lines.append(f"{prefix}{_LAST if is_last else _BRANCH}{name}/")
        _render_node(node.directories[name], prefix + (_SPACE if is_last else _PIPE), lines)

    for index, file_name in enumerate(file_names):
        is_last = index == len(file_names) - 1
        lines.append(f"{prefix}{_LAST if is_last else _BRANCH}{file_name}")


__all__ = [
    "FILES_KEY",
    "FileTreeNode",
    "build_file_tree",
    "directory_key",
    "flatten_file_tree",
    "format_file_tree",
    "render_file_tree",
]
