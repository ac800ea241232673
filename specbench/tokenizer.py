"""Canonical text tokenizer shared by every decoder strategy."""

from __future__ import annotations

import re
from enum import Enum

PUNCTUATION = ".,!?;:'\"()-"

# Word runs, whitespace runs, then any single leftover character. The last
# alternative keeps the split total so nothing is ever dropped.
_TOKEN_RE = re.compile(r"\w+|\s+|.", re.DOTALL)


class TokenKind(str, Enum):
    WORD = "word"
    WHITESPACE = "whitespace"
    PUNCTUATION = "punctuation"
    SYMBOL = "symbol"


def tokenize(text: str) -> list[str]:
    """Split text into word runs, whitespace runs and single characters.

    Concatenating the result always reproduces ``text`` exactly.
    """
    return _TOKEN_RE.findall(text)


def detokenize(tokens: list[str]) -> str:
    return "".join(tokens)


def classify(token: str) -> TokenKind:
    if not token:
        raise ValueError("cannot classify an empty token")
    if token.isspace():
        return TokenKind.WHITESPACE
    if token in PUNCTUATION and len(token) == 1:
        return TokenKind.PUNCTUATION
    if re.fullmatch(r"\w+", token):
        return TokenKind.WORD
    return TokenKind.SYMBOL


def is_punctuation(token: str) -> bool:
    return len(token) == 1 and token in PUNCTUATION
