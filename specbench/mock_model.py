"""Offline generators: simulated models, scripted replay and a thread adapter."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

from .interfaces import GeneratorError, GeneratorRole
from .tokenizer import PUNCTUATION

logger = logging.getLogger(__name__)

WORDS = [
    "will", "be", "revolutionize", "transform", "change", "improve", "enhance",
    "technology", "society", "world", "future", "innovation", "progress",
    "artificial", "intelligence", "machine", "learning", "automation",
    "the", "and", "to", "of", "in", "for", "with", "by", "through",
    "create", "develop", "advance", "enable", "provide", "support",
    "systems", "applications", "solutions", "capabilities", "opportunities",
]

CONTEXT_WORDS = {
    "cat": ["sat", "on", "the", "mat", "purrs", "sleeps", "plays"],
    "dog": ["barks", "runs", "plays", "fetch", "tail", "wags"],
    "quick": ["brown", "fox", "jumps", "over", "fast", "speed"],
    "fox": ["brown", "quick", "jumps", "over", "clever", "sly"],
    "sun": ["shines", "bright", "warm", "light", "day", "sky"],
    "moon": ["glows", "night", "stars", "bright", "full", "crescent"],
    "water": ["flows", "river", "stream", "clear", "blue", "deep"],
    "tree": ["tall", "green", "leaves", "branches", "forest", "oak"],
}

SENTENCE_PUNCTUATION = [".", ",", "!", "?", ";", ":"]


@dataclass(frozen=True)
class Latency:
    """Simulated call latency: ``base_s`` plus uniform jitter up to ``jitter_s``."""

    base_s: float
    jitter_s: float


DEFAULT_LATENCY = {
    GeneratorRole.DRAFT: Latency(base_s=0.05, jitter_s=0.03),
    GeneratorRole.TARGET: Latency(base_s=0.2, jitter_s=0.1),
}


def _stable_seed(*parts: object) -> int:
    digest = hashlib.sha256("\x1f".join(str(p) for p in parts).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def introduce_typo(word: str, rng: random.Random) -> str:
    """Corrupt a word by swapping, duplicating or replacing one character."""
    if len(word) < 3:
        return word
    kind = rng.choice(["swap", "duplicate", "wrong"])
    if kind == "swap":
        pos = rng.randrange(len(word) - 1)
        return word[:pos] + word[pos + 1] + word[pos] + word[pos + 2:]
    if kind == "duplicate":
        pos = rng.randrange(len(word))
        return word[:pos] + word[pos] + word[pos:]
    pos = rng.randrange(len(word))
    return word[:pos] + rng.choice("abcdefghijklmnopqrstuvwxyz") + word[pos + 1:]


class MockGenerator:
    """Simulated draft/target model pair for offline benchmarking.

    The target continuation is a deterministic function of ``(seed,
    context)``, so verifying the same context twice yields the same text.
    The draft follows the target continuation but, per word, agrees only
    with probability ``draft_accuracy``; otherwise it picks another word or
    introduces a typo.
    """

    def __init__(
        self,
        seed: int = 0,
        draft_accuracy: float = 0.7,
        latency: Optional[dict[GeneratorRole, Latency]] = None,
        simulate_latency: bool = True,
    ):
        if not 0.0 <= draft_accuracy <= 1.0:
            raise ValueError("draft_accuracy must be within [0, 1]")
        self.seed = seed
        self.draft_accuracy = draft_accuracy
        self.latency = latency or DEFAULT_LATENCY
        self.simulate_latency = simulate_latency
        self._jitter = random.Random(seed)
        self.calls: dict[GeneratorRole, int] = {role: 0 for role in GeneratorRole}

    def _vocabulary(self, context: str) -> list[str]:
        lowered = context.lower()
        contextual = [w for key, words in CONTEXT_WORDS.items() if key in lowered for w in words]
        return contextual + WORDS if contextual else WORDS

    def _target_tokens(self, context: str, num_tokens: int) -> list[str]:
        rng = random.Random(_stable_seed(self.seed, "target", context))
        vocabulary = self._vocabulary(context)
        tokens: list[str] = []
        words_since_punct = 0
        previous = context[-1:] if context else ""
        while len(tokens) < num_tokens:
            if previous and not previous.isspace():
                token = " "
            elif words_since_punct >= 3 and rng.random() < 0.1:
                # Punctuation attaches to the preceding word, so drop the space.
                if tokens and tokens[-1] == " ":
                    tokens.pop()
                token = rng.choice(SENTENCE_PUNCTUATION)
                words_since_punct = 0
            else:
                token = rng.choice(vocabulary)
                words_since_punct += 1
            tokens.append(token)
            previous = token
        return tokens[:num_tokens]

    def _draft_tokens(self, context: str, num_tokens: int) -> list[str]:
        rng = random.Random(_stable_seed(self.seed, "draft", context))
        vocabulary = self._vocabulary(context)
        drafted = []
        for token in self._target_tokens(context, num_tokens):
            if token.isspace() or token in PUNCTUATION or rng.random() < self.draft_accuracy:
                drafted.append(token)
            elif rng.random() < 0.5:
                drafted.append(introduce_typo(token, rng))
            else:
                drafted.append(rng.choice(vocabulary))
        return drafted

    async def generate(self, context: str, num_tokens: int, role: GeneratorRole) -> str:
        if num_tokens < 1:
            raise GeneratorError(f"num_tokens must be positive, got {num_tokens}")
        self.calls[role] += 1
        if self.simulate_latency:
            latency = self.latency[role]
            await asyncio.sleep(latency.base_s + self._jitter.random() * latency.jitter_s)
        if role is GeneratorRole.DRAFT:
            tokens = self._draft_tokens(context, num_tokens)
        else:
            tokens = self._target_tokens(context, num_tokens)
        return "".join(tokens)


Response = Union[str, BaseException, Callable[[str, int], str]]


@dataclass(frozen=True)
class RecordedCall:
    context: str
    num_tokens: int
    role: GeneratorRole


class ScriptedGenerator:
    """Replays canned responses per role, in order, and records every call.

    A response may be a string, an exception instance (raised instead of
    answering) or a callable ``(context, num_tokens) -> str``. Once a
    role's script is used up, ``fallback`` (if given) answers every further
    call; otherwise the call fails with a permanent ``GeneratorError``.
    """

    def __init__(
        self,
        draft: Iterable[Response] = (),
        target: Iterable[Response] = (),
        fallback: Optional[Callable[[str, int, GeneratorRole], str]] = None,
        delay_s: float = 0.0,
    ):
        self._scripts = {
            GeneratorRole.DRAFT: deque(draft),
            GeneratorRole.TARGET: deque(target),
        }
        self._fallback = fallback
        self._delay_s = delay_s
        self.calls: list[RecordedCall] = []

    def calls_for(self, role: GeneratorRole) -> list[RecordedCall]:
        return [c for c in self.calls if c.role is role]

    async def generate(self, context: str, num_tokens: int, role: GeneratorRole) -> str:
        self.calls.append(RecordedCall(context=context, num_tokens=num_tokens, role=role))
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        script = self._scripts[role]
        if not script:
            if self._fallback is None:
                raise GeneratorError(f"no scripted {role.value} response left")
            return self._fallback(context, num_tokens, role)
        response = script.popleft()
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(context, num_tokens)
        return response


class ThreadedGenerator:
    """Runs a blocking ``fn(context, num_tokens, role) -> str`` in a worker thread."""

    def __init__(self, fn: Callable[[str, int, GeneratorRole], str]):
        self.fn = fn

    async def generate(self, context: str, num_tokens: int, role: GeneratorRole) -> str:
        return await asyncio.to_thread(self.fn, context, num_tokens, role)
