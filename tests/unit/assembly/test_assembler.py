"""
context-bundler — unit tests for the context document assembler

File: tests/unit/assembly/test_assembler.py

Purpose
- Validate the byte-exact prompt layout and the handling of missing,
  skipped and out-of-root requests.

What this test file should cover
- File map shows every discovered file; contents appear in request order.
- Content is inserted verbatim (fences and CRLF are not rewritten).
- The bundle token count is one tokenization of the whole document.
- Unknown encodings fail before any file is read.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from context_bundler.assembly import ContextAssembler, MetaPrompt, render_document
from context_bundler.constants import DEFAULT_MAX_TOKENS
from context_bundler.errors import UnknownEncodingError

_KNOWN = frozenset({"cl100k_base", "o200k_base"})


class _WordTokenizer:
    def __init__(self) -> None:
        self.texts: list[str] = []

    def count(self, text: str, encoding: str) -> int:
        if encoding not in _KNOWN:
            raise UnknownEncodingError(encoding)
        self.texts.append(text)
        return len(text.split())


def _write(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")


def _words(count: int) -> str:
    return " ".join(f"w{index}" for index in range(count))


async def test_document_layout_is_exact(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "alpha")
    _write(tmp_path / "src" / "b.py", "print('b')")
    assembler = ContextAssembler(tmp_path, _WordTokenizer())

    bundle = await assembler.assemble(
        ["a.txt"],
        "Do it",
        [MetaPrompt(name="style", content="Be terse")],
    )

    assert bundle.prompt == (
        "<file_map>\n"
        f"{tmp_path}\n"
        "├── src/\n"
        "│   └── b.py\n"
        "└── a.txt\n"
        "</file_map>\n\n"
        "<file_contents>\n"
        "File: a.txt\n"
        "```\n"
        "alpha\n"
        "```\n\n"
        "</file_contents>\n\n"
        '<meta prompt 1 = "style">\n'
        "Be terse\n"
        "</meta prompt 1>\n\n"
        "<user_instructions>\n"
        "Do it\n"
        "</user_instructions>\n"
    )
    assert bundle.meta_prompt_count == 1
    assert bundle.total_files == 2


async def test_token_count_covers_whole_document(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", _words(10))
    _write(tmp_path / "b.txt", _words(20))
    tokenizer = _WordTokenizer()
    assembler = ContextAssembler(tmp_path, tokenizer)

    bundle = await assembler.assemble(["a.txt", "b.txt"], "Summarize")

    assert bundle.token_count > 30
    assert bundle.token_count == len(bundle.prompt.split())
    assert tokenizer.texts[-1] == bundle.prompt
    assert bundle.missing_files == ()
    assert bundle.files == ("a.txt", "b.txt")
    assert bundle.encoding == "cl100k_base"
    assert bundle.max_tokens == DEFAULT_MAX_TOKENS
    assert not bundle.is_over_limit


async def test_missing_requests_are_listed_not_fatal(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "present")
    assembler = ContextAssembler(tmp_path, _WordTokenizer())

    bundle = await assembler.assemble(["a.txt", "c.txt"], "Explain")

    assert bundle.files == ("a.txt",)
    assert bundle.missing_files == ("c.txt",)
    assert "File: c.txt" not in bundle.prompt


async def test_outside_root_and_directory_requests_are_missing(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _write(repo / "src" / "main.py", "x = 1")
    _write(tmp_path / "outside.txt", "do not leak")
    assembler = ContextAssembler(repo, _WordTokenizer())

    bundle = await assembler.assemble(
        ["../outside.txt", "/etc/hostname", "src", "src/main.py"], "Check"
    )

    assert bundle.files == ("src/main.py",)
    assert bundle.missing_files == ("../outside.txt", "/etc/hostname", "src")
    assert "do not leak" not in bundle.prompt


async def test_undecodable_file_is_skipped_and_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    _write(tmp_path / "a.txt", "fine")
    (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x81\x00")
    assembler = ContextAssembler(tmp_path, _WordTokenizer())

    with caplog.at_level("WARNING", logger="context_bundler.assembly.assembler"):
        bundle = await assembler.assemble(["blob.bin", "a.txt"], "Go")

    assert bundle.files == ("a.txt",)
    assert bundle.skipped_files == ("blob.bin",)
    assert bundle.missing_files == ()
    assert any("skipping unreadable file" in record.message for record in caplog.records)


async def test_content_is_inserted_verbatim(tmp_path: Path) -> None:
    fenced = "# Notes\n```python\nx = 1\n```\n"
    (tmp_path / "notes.md").write_bytes(fenced.encode("utf-8"))
    (tmp_path / "win.txt").write_bytes(b"line one\r\nline two")
    assembler = ContextAssembler(tmp_path, _WordTokenizer())

    bundle = await assembler.assemble(["notes.md", "win.txt"], "Review")

    assert f"File: notes.md\n```\n{fenced}\n```\n\n" in bundle.prompt
    assert "line one\r\nline two" in bundle.prompt


async def test_contents_follow_request_order(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "first")
    _write(tmp_path / "z.txt", "last")
    assembler = ContextAssembler(tmp_path, _WordTokenizer(), concurrency=1)

    bundle = await assembler.assemble(["z.txt", "a.txt"], "Order")

    assert bundle.files == ("z.txt", "a.txt")
    assert bundle.prompt.index("File: z.txt") < bundle.prompt.index("File: a.txt")


async def test_without_meta_prompts_no_meta_block_is_rendered(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "x")
    assembler = ContextAssembler(tmp_path, _WordTokenizer())

    bundle = await assembler.assemble(["a.txt"], "Plain")

    assert "<meta prompt" not in bundle.prompt
    assert bundle.meta_prompt_count == 0


async def test_over_limit_is_reported_not_raised(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", _words(50))
    assembler = ContextAssembler(tmp_path, _WordTokenizer())

    bundle = await assembler.assemble(["a.txt"], "Big", max_tokens=10, encoding="o200k_base")

    assert bundle.is_over_limit
    assert bundle.max_tokens == 10
    assert bundle.encoding == "o200k_base"
    assert bundle.to_payload()["isOverLimit"] is True


async def test_unknown_encoding_fails_before_reading(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "x")
    tokenizer = _WordTokenizer()
    assembler = ContextAssembler(tmp_path, tokenizer)

    with pytest.raises(UnknownEncodingError):
        await assembler.assemble(["a.txt"], "x", encoding="bogus")

    assert tokenizer.texts == []


async def test_repo_path_is_relative_to_working_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    repo = tmp_path / "repo"
    _write(repo / "a.txt", "x")
    monkeypatch.chdir(tmp_path)

    bundle = await ContextAssembler(repo.resolve(), _WordTokenizer()).assemble(["a.txt"], "x")

    assert bundle.repo_path == "repo"


def test_non_positive_concurrency_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="concurrency"):
        ContextAssembler(tmp_path, _WordTokenizer(), concurrency=0)


def test_render_document_numbers_meta_prompts_from_one() -> None:
    document = render_document(
        root="/repo",
        tree="",
        contents=[],
        meta_prompts=[MetaPrompt("a", "one"), MetaPrompt("b", "two")],
        user_instructions="",
    )

    assert '<meta prompt 1 = "a">\none\n</meta prompt 1>\n\n' in document
    assert '<meta prompt 2 = "b">\ntwo\n</meta prompt 2>\n\n' in document
    assert document.endswith("<user_instructions>\n\n</user_instructions>\n")
