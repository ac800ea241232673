"""Greedy prefix acceptance of drafted tokens against verified tokens."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RoundVerdict:
    """Outcome of comparing one draft batch with its verification batch."""

    accepted: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)  # draft tokens after the cut

    @property
    def all_rejected(self) -> bool:
        return not self.accepted


def compare_and_accept(draft_tokens: list[str], verify_tokens: list[str]) -> list[str]:
    """Return the longest prefix of ``draft_tokens`` matching ``verify_tokens``.

    Tokens are compared position by position with exact equality, whitespace
    and punctuation included. The walk stops at the first mismatch or when
    either sequence runs out; later matches are never picked up again.
    """
    accepted: list[str] = []
    for draft, verified in zip(draft_tokens, verify_tokens):
        if draft != verified:
            break
        accepted.append(draft)
    return accepted


def judge_round(draft_tokens: list[str], verify_tokens: list[str]) -> RoundVerdict:
    accepted = compare_and_accept(draft_tokens, verify_tokens)
    return RoundVerdict(
        accepted=accepted,
        rejected=list(draft_tokens[len(accepted):]),
    )
