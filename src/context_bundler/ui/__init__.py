"""UI package exports for the CLI and its plain-text renderer."""

from context_bundler.ui.cli import CLIError, build_parser, run_cli
from context_bundler.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "run_cli",
]
