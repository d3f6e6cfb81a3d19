"""
Token counting for pagination.

The browser shows roughly `view_tokens` tokens per page view. Counting is
delegated to a `TokenCounter`; the tiktoken-based counter is the default.
Pagination degrades to a fixed characters-per-token estimate when no counter
is configured or the counter fails.
"""

from __future__ import annotations

import dataclasses
import functools
import itertools
from typing import Protocol

import tiktoken

# Tokenizer encoding name
ENC_NAME = "o200k_base"

# Estimate used when no token counter is available
CHARS_PER_TOKEN = 4


class TokenCounter(Protocol):
    def count_tokens(self, text: str) -> int: ...

    def prefix_length(self, text: str, max_tokens: int) -> int:
        """Number of characters covered by the first `max_tokens` tokens of `text`."""
        ...


@functools.cache
def _tiktoken_vocabulary_lengths(enc_name: str) -> list[int]:
    """Gets the character lengths of all tokens in the specified TikToken vocabulary."""
    encoding = tiktoken.get_encoding(enc_name)
    results = []
    for i in range(encoding.n_vocab):
        try:
            results.append(len(encoding.decode([i])))
        except (KeyError, ValueError):
            # gaps in the vocabulary (unused special token ids)
            results.append(1)
    return results


def warmup_caches(enc_names: list[str]) -> None:
    """Warm up the cache by computing token length lists for the given TikToken encodings."""
    for _ in map(_tiktoken_vocabulary_lengths, enc_names):
        pass


@dataclasses.dataclass(frozen=True)
class Tokens:
    tokens: list[int]
    tok2idx: list[int]  # Offsets = running sum of lengths.


@functools.cache
def max_chars_per_token(enc_name: str) -> int:
    """Typical value is 128, but let's be safe."""
    tok_lens = _tiktoken_vocabulary_lengths(enc_name)
    return max(tok_lens)


def get_tokens(text: str, enc_name: str) -> Tokens:
    encoding = tiktoken.get_encoding(enc_name)
    tokens = encoding.encode(text, disallowed_special=())
    _vocabulary_lengths = _tiktoken_vocabulary_lengths(enc_name)
    tok2idx = [0] + list(itertools.accumulate(_vocabulary_lengths[i] for i in tokens))[
        :-1
    ]
    return Tokens(tokens=tokens, tok2idx=tok2idx)


@dataclasses.dataclass(frozen=True)
class TiktokenCounter:
    encoding_name: str = ENC_NAME

    def count_tokens(self, text: str) -> int:
        encoding = tiktoken.get_encoding(self.encoding_name)
        return len(encoding.encode(text, disallowed_special=()))

    def prefix_length(self, text: str, max_tokens: int) -> int:
        # limit the amount of text we tokenize here
        upper_bound = max_chars_per_token(self.encoding_name)
        tok2idx = get_tokens(
            text[: (max_tokens + 1) * upper_bound], self.encoding_name
        ).tok2idx
        if len(tok2idx) > max_tokens:
            return tok2idx[max_tokens]
        return len(text)


def estimate_prefix_length(text: str, max_tokens: int) -> int:
    return min(len(text), max_tokens * CHARS_PER_TOKEN)
