"""
context-bundler — unit tests for file tree building and rendering

File: tests/unit/test_file_tree.py

Purpose
- Validate the tree shape, its JSON form and the connector-style rendering
  used in the bundle's file map.

What this test file should cover
- Directories before files at each level, both sorted by name.
- Flattening a built tree reproduces the input path set.
"""

from __future__ import annotations

from context_bundler.file_tree import (
    FILES_KEY,
    build_file_tree,
    flatten_file_tree,
    format_file_tree,
    render_file_tree,
)

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st

    HYPOTHESIS_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - fallback path
    HYPOTHESIS_AVAILABLE = False


def test_to_dict_nests_directories_and_lists_files() -> None:
    tree = build_file_tree(["src/a.py", "src/lib/b.py", "README.md"])

    assert tree.to_dict() == {
        "src": {"lib": {FILES_KEY: ["b.py"]}, FILES_KEY: ["a.py"]},
        FILES_KEY: ["README.md"],
    }


def test_to_dict_keeps_directories_named_like_the_files_key() -> None:
    tree = build_file_tree(["_files/x.py", "__files/y.py", "top.py"])

    assert tree.to_dict() == {
        "__files": {FILES_KEY: ["x.py"]},
        "___files": {FILES_KEY: ["y.py"]},
        FILES_KEY: ["top.py"],
    }
    assert format_file_tree(["_files/x.py"]) == "└── _files/\n    └── x.py\n"


def test_render_uses_connectors_and_directories_first() -> None:
    rendered = format_file_tree(["README.md", "src/lib/b.py", "src/a.py"])

    assert rendered == (
        "├── src/\n"
        "│   ├── lib/\n"
        "│   │   └── b.py\n"
        "│   └── a.py\n"
        "└── README.md\n"
    )


def test_last_directory_without_sibling_files_uses_corner_connector() -> None:
    rendered = format_file_tree(["docs/guide.md", "app/main.py"])

    assert rendered == (
        "├── app/\n"
        "│   └── main.py\n"
        "└── docs/\n"
        "    └── guide.md\n"
    )


def test_empty_input_renders_nothing() -> None:
    assert render_file_tree(build_file_tree([])) == ""
    assert build_file_tree([]).to_dict() == {}


def test_duplicates_and_empty_segments_are_collapsed() -> None:
    tree = build_file_tree(["a.txt", "a.txt", "", "dir//b.txt"])

    assert flatten_file_tree(tree) == ["dir/b.txt", "a.txt"]


def test_rendering_is_independent_of_input_order() -> None:
    paths = ["z/1.txt", "a/2.txt", "m.txt", "a/b/3.txt"]

    assert format_file_tree(paths) == format_file_tree(list(reversed(paths)))


if HYPOTHESIS_AVAILABLE:

    @settings(max_examples=50, derandomize=True, deadline=None)
    @given(
        paths=st.lists(
            st.from_regex(r"[a-z]{1,3}(/[a-z]{1,3}){0,2}", fullmatch=True),
            max_size=12,
        )
    )
    def test_property_flatten_reproduces_input_set(paths: list[str]) -> None:
        tree = build_file_tree(paths)

        assert set(flatten_file_tree(tree)) == set(paths)
