"""Context assembly: request validation, document rendering, external generation and the engine facade."""

from context_bundler.assembly.assembler import ContextAssembler, render_document
from context_bundler.assembly.bundle import (
    ContextBundle,
    DirectoryEntry,
    DirectoryListing,
    FileListing,
    FileTokenReport,
    GeneratedContext,
    MetaPrompt,
    TextTokenCount,
)
from context_bundler.assembly.engine import EngineSettings, RepositoryContextEngine
from context_bundler.assembly.generator import (
    GenerationOptions,
    PromptCodeGenerator,
    PromptGenerator,
)
from context_bundler.assembly.requests import (
    AssembleRequest,
    parse_assemble_request,
    parse_meta_prompts,
    validate_max_tokens,
)

__all__ = [
    "AssembleRequest",
    "ContextAssembler",
    "ContextBundle",
    "DirectoryEntry",
    "DirectoryListing",
    "EngineSettings",
    "FileListing",
    "FileTokenReport",
    "GeneratedContext",
    "GenerationOptions",
    "MetaPrompt",
    "PromptCodeGenerator",
    "PromptGenerator",
    "RepositoryContextEngine",
    "TextTokenCount",
    "parse_assemble_request",
    "parse_meta_prompts",
    "render_document",
    "validate_max_tokens",
]
