"""Token counting: the tokenizer boundary and the per-file count cache."""

from context_bundler.tokens.cache import TokenCache, TokenCacheEntry
from context_bundler.tokens.tokenizer import TiktokenTokenizer, Tokenizer

__all__ = [
    "TiktokenTokenizer",
    "TokenCache",
    "TokenCacheEntry",
    "Tokenizer",
]
