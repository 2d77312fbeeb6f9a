"""Unit tests for glob compilation against repository-relative POSIX paths."""

from __future__ import annotations

import pytest

from context_bundler.discovery import GlobPatternError, compile_glob

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st

    HYPOTHESIS_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - fallback path
    HYPOTHESIS_AVAILABLE = False


def test_double_star_spans_any_number_of_directories() -> None:
    pattern = compile_glob("src/**/*.py")

    assert pattern.base == "src"
    assert pattern.max_segments is None
    assert pattern.matches("src/app.py")
    assert pattern.matches("src/pkg/sub/mod.py")
    assert not pattern.matches("lib/app.py")
    assert not pattern.matches("src/app.pyc")


def test_single_star_stays_within_one_segment() -> None:
    pattern = compile_glob("*.md")

    assert pattern.base == ""
    assert pattern.max_segments == 1
    assert pattern.matches("README.md")
    assert not pattern.matches("docs/guide.md")


def test_match_all_pattern_matches_root_and_nested_files() -> None:
    pattern = compile_glob("**/*")

    assert pattern.matches(".gitignore")
    assert pattern.matches("a/b/c.txt")


def test_trailing_double_star_matches_everything_below_base() -> None:
    pattern = compile_glob("docs/**")

    assert pattern.base == "docs"
    assert pattern.matches("docs/a.md")
    assert pattern.matches("docs/deep/b.md")
    assert not pattern.matches("docs")


def test_braces_and_character_classes() -> None:
    braces = compile_glob("web/*.{ts,tsx}")
    digits = compile_glob("file[0-9].txt")
    negated = compile_glob("[!a]b.txt")

    assert braces.matches("web/app.ts")
    assert braces.matches("web/app.tsx")
    assert not braces.matches("web/app.js")
    assert digits.matches("file7.txt")
    assert not digits.matches("fileX.txt")
    assert negated.matches("cb.txt")
    assert not negated.matches("ab.txt")


def test_braces_with_slashes_expand_into_whole_paths() -> None:
    pattern = compile_glob("{a/b,c}/f.py")
    shared = compile_glob("src/{app/views,lib}/*.py")

    assert pattern.matches("a/b/f.py")
    assert pattern.matches("c/f.py")
    assert not pattern.matches("a/f.py")
    assert pattern.base == ""
    assert pattern.max_segments == 3
    assert shared.base == "src"
    assert shared.matches("src/app/views/index.py")
    assert shared.matches("src/lib/util.py")
    assert not shared.matches("src/app/index.py")


def test_question_mark_matches_exactly_one_character() -> None:
    pattern = compile_glob("v?.txt")

    assert pattern.matches("v1.txt")
    assert not pattern.matches("v10.txt")


def test_leading_dot_slash_and_backslashes_are_normalized() -> None:
    pattern = compile_glob(".\\src\\*.py")

    assert pattern.base == "src"
    assert pattern.matches("src/main.py")


def test_base_stops_at_first_magic_segment() -> None:
    pattern = compile_glob("pkg/*/tests/*.py")

    assert pattern.base == "pkg"
    assert pattern.max_segments == 4


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "/etc/passwd",
        "C:/Windows/*.dll",
        "../outside/*.py",
        "src/../../x",
        "[abc",
        "{../up,ok}/*.py",
    ],
)
def test_invalid_patterns_raise(raw: str) -> None:
    with pytest.raises(GlobPatternError):
        compile_glob(raw)


def test_glob_pattern_error_is_a_value_error() -> None:
    with pytest.raises(ValueError, match="unterminated character class"):
        compile_glob("src/[abc.py")


if HYPOTHESIS_AVAILABLE:

    @settings(max_examples=60, derandomize=True, deadline=None)
    @given(
        path=st.from_regex(r"[a-z0-9_]{1,8}(/[a-z0-9_.]{1,8}){0,3}", fullmatch=True),
    )
    def test_property_literal_paths_match_themselves(path: str) -> None:
        if any(segment in {".", ".."} for segment in path.split("/")):
            return
        compiled = compile_glob(path)

        assert compiled.matches(path)
        assert compiled.max_segments == len(path.split("/"))
