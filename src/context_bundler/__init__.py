"""
context-bundler — package root

File: src/context_bundler/__init__.py

Purpose
- Assemble token-budgeted context bundles from a source repository for LLM
  prompts: discover files, filter them through layered ignore rules, count
  tokens per file with caching, and render a structured prompt document.

Import boundary
- No side effects at import time (no config loading, no logging setup).
- Heavy submodules (tokenizer, engine) are imported explicitly by callers:
  ``from context_bundler.assembly import RepositoryContextEngine``.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
