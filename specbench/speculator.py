"""Orchestrator: draft → verify → accept / fall back loop."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Union

from .acceptance import RoundVerdict, judge_round
from .decoding import Decoder, DecodingRequest, EventSink, GenerationState, first_token
from .interfaces import DraftError, GeneratorRole, Ok, RetryPolicy, TargetError, TokenGenerator
from .metrics import RoundStats
from .schemas import DecoderKind, RoundEvent, TokenStatus
from .stopping import StopPredicate
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

Failure = Optional[Union[DraftError, TargetError]]


class SpeculativeDecoder(Decoder):
    kind = DecoderKind.SPECULATIVE

    def __init__(
        self,
        draft: TokenGenerator,
        target: TokenGenerator,
        stop: Optional[StopPredicate] = None,
        retry: Optional[RetryPolicy] = None,
        on_event: Optional[EventSink] = None,
        tokenizer: Callable[[str], list[str]] = tokenize,
    ):
        super().__init__(target, stop=stop, retry=retry, on_event=on_event, tokenizer=tokenizer)
        self.draft = draft

    async def _run_draft_phase(
        self, state: GenerationState, k: int
    ) -> tuple[Union[list[str], DraftError, TargetError], float]:
        """Draft ``k`` tokens. Returns (draft_tokens or failure, draft_elapsed_ms)."""
        logger.debug(f"Round {state.round}: drafting {k} tokens (context: {len(state.context)} chars)")
        t0 = time.perf_counter()
        result = await self._call(self.draft, state, k, GeneratorRole.DRAFT)
        elapsed = (time.perf_counter() - t0) * 1000
        if not isinstance(result, Ok):
            return result, elapsed

        draft_tokens = self.tokenize(result.text)
        state.stats.record_draft(len(draft_tokens))
        if not draft_tokens:
            return DraftError("draft generator returned no tokens", attempts=result.attempts), elapsed

        logger.debug(f"Round {state.round}: drafted {draft_tokens} in {elapsed:.0f}ms")
        return draft_tokens, elapsed

    async def _run_verify_phase(
        self, state: GenerationState, draft_tokens: list[str]
    ) -> tuple[Union[list[str], DraftError, TargetError], float]:
        """Ask the target for as many tokens as were drafted, on the same context."""
        t0 = time.perf_counter()
        result = await self._call(self.target, state, len(draft_tokens), GeneratorRole.TARGET)
        elapsed = (time.perf_counter() - t0) * 1000
        if not isinstance(result, Ok):
            return result, elapsed

        state.stats.record_verify()
        verify_tokens = self.tokenize(result.text)
        logger.debug(f"Round {state.round}: verified {verify_tokens} in {elapsed:.0f}ms")
        return verify_tokens, elapsed

    async def _accept(self, state: GenerationState, verdict: RoundVerdict, drafted: int) -> None:
        state.append("".join(verdict.accepted))
        state.stats.record_acceptance(
            accepted=len(verdict.accepted),
            drafted=drafted,
            rejected=len(verdict.rejected),
        )
        await self._emit_tokens(state, verdict.accepted, TokenStatus.ACCEPTED)
        await self._emit_tokens(
            state, verdict.rejected, TokenStatus.REJECTED, start=len(verdict.accepted)
        )
        logger.debug(
            f"Round {state.round}: accepted {len(verdict.accepted)}/{drafted}, "
            f"saved {max(0, drafted - 1)} target calls"
        )

    async def _fall_back(self, state: GenerationState, verdict: RoundVerdict) -> Failure:
        """Nothing verified: take a single token straight from the target."""
        logger.debug(f"Round {state.round}: no draft token accepted, falling back to target")
        result = await self._call(self.target, state, 1, GeneratorRole.TARGET)
        if not isinstance(result, Ok):
            return result

        token = first_token(result, self.tokenize)
        if token is None:
            return TargetError("target generator returned no fallback token", attempts=result.attempts)

        state.append(token)
        state.stats.record_fallback(rejected=len(verdict.rejected))
        await self._emit_tokens(state, verdict.rejected, TokenStatus.REJECTED)
        await self._emit_tokens(state, [token], TokenStatus.FALLBACK)
        return None

    async def _step(self, state: GenerationState, request: DecodingRequest) -> Failure:
        round_start = time.perf_counter()

        # --- Draft ---
        draft_tokens, draft_elapsed = await self._run_draft_phase(state, request.k)
        if not isinstance(draft_tokens, list):
            return draft_tokens

        # --- Verify ---
        verify_tokens, verify_elapsed = await self._run_verify_phase(state, draft_tokens)
        if not isinstance(verify_tokens, list):
            return verify_tokens

        # --- Accept or fall back ---
        verdict = judge_round(draft_tokens, verify_tokens)
        if verdict.accepted:
            await self._accept(state, verdict, len(draft_tokens))
        else:
            failure = await self._fall_back(state, verdict)
            if failure is not None:
                return failure

        round_time = (time.perf_counter() - round_start) * 1000
        state.stats.record_round(
            RoundStats(
                drafted=len(draft_tokens),
                accepted=len(verdict.accepted),
                fell_back=verdict.all_rejected,
                draft_latency_ms=draft_elapsed,
                verify_latency_ms=verify_elapsed,
                round_time_ms=round_time,
            )
        )
        logger.info(
            f"Round {state.round}: accepted {len(verdict.accepted)}/{len(draft_tokens)}"
            f"{' (fallback)' if verdict.all_rejected else ''}, "
            f"{state.stats.accepted} tokens so far in {round_time:.0f}ms"
        )
        await self._emit(
            RoundEvent(
                decoder=self.kind,
                round=state.round,
                drafted=len(draft_tokens),
                accepted=len(verdict.accepted),
                fell_back=verdict.all_rejected,
                model_calls=state.stats.model_calls,
                tokens_generated=state.stats.accepted,
                efficiency_percent=state.stats.efficiency_percent(),
                round_time_ms=round_time,
                acceptance_rate=state.stats.acceptance_rate(),
                draft_latency_ms=state.stats.avg_draft_latency(),
                verify_latency_ms=state.stats.avg_verify_latency(),
            )
        )
        return None
