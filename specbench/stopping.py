"""Pluggable stop predicates, consulted after every decoding round."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Callable

from .tokenizer import TokenKind, classify, tokenize

if TYPE_CHECKING:
    from .decoding import DecodingRequest, GenerationState

StopPredicate = Callable[["GenerationState", "DecodingRequest"], bool]


class BudgetUnit(str, Enum):
    WORDS = "words"
    TOKENS = "tokens"
    CHARACTERS = "characters"


def produced(state: "GenerationState", unit: BudgetUnit) -> int:
    if unit is BudgetUnit.CHARACTERS:
        return len(state.output)
    if unit is BudgetUnit.WORDS:
        # Whitespace and punctuation do not count towards the budget.
        return sum(1 for token in tokenize(state.output) if classify(token) is TokenKind.WORD)
    return state.stats.accepted


class LengthBudget:
    """Stop once ``target_length`` words (or tokens, or characters) were produced."""

    def __init__(self, unit: BudgetUnit = BudgetUnit.WORDS):
        self.unit = BudgetUnit(unit)

    def __call__(self, state: "GenerationState", request: "DecodingRequest") -> bool:
        return produced(state, self.unit) >= request.target_length


class SentenceBoundaryStop(LengthBudget):
    """Length budget, or an early stop at the end of a sentence.

    The early stop needs the context to end in one of ``terminals`` and at
    least ``min_fraction`` of the budget to be produced already, so a short
    prompt that happens to end with a period does not end the run.
    """

    def __init__(
        self,
        unit: BudgetUnit = BudgetUnit.WORDS,
        min_fraction: float = 0.5,
        terminals: str = ".!?",
    ):
        super().__init__(unit)
        if not 0.0 <= min_fraction <= 1.0:
            raise ValueError("min_fraction must be within [0, 1]")
        self.min_fraction = min_fraction
        self.terminals = terminals

    def __call__(self, state: "GenerationState", request: "DecodingRequest") -> bool:
        if super().__call__(state, request):
            return True
        if not state.context or state.context[-1] not in self.terminals:
            return False
        return produced(state, self.unit) >= self.min_fraction * request.target_length
