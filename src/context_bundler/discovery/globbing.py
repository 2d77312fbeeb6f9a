"""Glob pattern compilation for repository-relative POSIX paths."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

_GLOB_MAGIC: Final[tuple[str, ...]] = ("*", "?", "[", "{")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


class GlobPatternError(ValueError):
    """Raised when a glob pattern cannot be compiled."""


@dataclass(frozen=True, slots=True)
class GlobPattern:
    """
    Compiled glob pattern.

    ``base`` is the literal directory prefix below which matches can occur, so
    enumeration never has to walk outside it. ``max_segments`` is the largest
    number of path segments a match can have, or ``None`` when the pattern
    contains ``**``.
    """

    raw: str
    base: str
    regex: re.Pattern[str]
    max_segments: int | None

    def matches(self, relative_path: str) -> bool:
        return self.regex.fullmatch(relative_path) is not None


def compile_glob(pattern: str) -> GlobPattern:
    """Compile ``pattern`` supporting ``*``, ``?``, ``[...]``, ``{a,b}`` and ``**``.

    Brace groups whose alternatives contain ``/`` are expanded before the
    pattern is split into segments, so ``{src/app,lib}/*.py`` works.
    """

    if not isinstance(pattern, str):
        raise GlobPatternError(f"pattern must be a string, got {type(pattern).__name__}")
    normalized = pattern.strip().replace("\\", "/")
    if not normalized:
        raise GlobPatternError("pattern must not be empty")

    variants = [_split_segments(variant, pattern) for variant in _expand_path_braces(normalized)]

    regex_source = "|".join(_segments_regex(segments, pattern) for segments in variants)
    try:
        compiled = re.compile(regex_source if len(variants) == 1 else f"(?:{regex_source})")
    except re.error as exc:
        raise GlobPatternError(f"invalid pattern {pattern!r}: {exc}") from exc

    base_segments = _literal_base(variants[0])
    for segments in variants[1:]:
        shared = 0
        for ours, theirs in zip(base_segments, _literal_base(segments)):
            if ours != theirs:
                break
            shared += 1
        base_segments = base_segments[:shared]

    max_segments: int | None = None
    if not any("**" in segments for segments in variants):
        max_segments = max(len(segments) for segments in variants)
    return GlobPattern(
        raw=pattern,
        base="/".join(base_segments),
        regex=compiled,
        max_segments=max_segments,
    )


def _expand_path_braces(text: str) -> list[str]:
    start = 0
    while True:
        opening = text.find("{", start)
        if opening == -1:
            return [text]
        closing = text.find("}", opening + 1)
        if closing == -1:
            return [text]
        body = text[opening + 1 : closing]
        if "/" in body:
            expanded: list[str] = []
            for alternative in body.split(","):
                expanded.extend(
                    _expand_path_braces(text[:opening] + alternative + text[closing + 1 :])
                )
            return expanded
        start = closing + 1


def _split_segments(normalized: str, pattern: str) -> list[str]:
    while normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.startswith("/") or _DRIVE_PREFIX.match(normalized):
        raise GlobPatternError(f"pattern must be relative to the repository root: {pattern!r}")

    segments = [segment for segment in normalized.split("/") if segment not in ("", ".")]
    if not segments:
        raise GlobPatternError(f"pattern has no path segments: {pattern!r}")
    if any(segment == ".." for segment in segments):
        raise GlobPatternError(f"pattern escapes the repository root: {pattern!r}")
    return segments


def _segments_regex(segments: list[str], pattern: str) -> str:
    regex_parts: list[str] = []
    for index, segment in enumerate(segments):
        is_last = index == len(segments) - 1
        if segment == "**":
            regex_parts.append(".+" if is_last else "(?:[^/]+/)*")
            continue
        regex_parts.append(_translate_segment(segment, pattern))
        if not is_last:
            regex_parts.append("/")
    return "".join(regex_parts)


def _literal_base(segments: list[str]) -> list[str]:
    base_segments: list[str] = []
    for segment in segments[:-1]:
        if _contains_glob_magic(segment):
            break
        base_segments.append(segment)
    return base_segments


def _contains_glob_magic(segment: str) -> bool:
    return any(symbol in segment for symbol in _GLOB_MAGIC)


def _translate_segment(segment: str, pattern: str) -> str:
    out: list[str] = []
    index = 0
    length = len(segment)
    while index < length:
        char = segment[index]
        if char == "*":
            while index + 1 < length and segment[index + 1] == "*":
                index += 1
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            negated = segment[index + 1 : index + 2] in ("!", "^")
            end = segment.find("]", index + 2 if negated else index + 1)
            if end == -1:
                raise GlobPatternError(f"unterminated character class in {pattern!r}")
            body = segment[index + 1 : end]
            if body[:1] in ("!", "^"):
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
            index = end
        elif char == "{":
            end = segment.find("}", index + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                alternatives = segment[index + 1 : end].split(",")
                out.append(
                    "(?:"
                    + "|".join(_translate_segment(item, pattern) for item in alternatives)
                    + ")"
                )
                index = end
        else:
            out.append(re.escape(char))
        index += 1
    return "".join(out)


__all__ = ["GlobPattern", "GlobPatternError", "compile_glob"]
