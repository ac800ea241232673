"""Baseline decoder: one target call per token."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Union

from .decoding import Decoder, DecodingRequest, EventSink, GenerationState, first_token
from .interfaces import DraftError, GeneratorRole, Ok, RetryPolicy, TargetError, TokenGenerator
from .metrics import RoundStats
from .schemas import DecoderKind, RoundEvent, TokenStatus
from .stopping import StopPredicate
from .tokenizer import tokenize

logger = logging.getLogger(__name__)


class SequentialDecoder(Decoder):
    kind = DecoderKind.SEQUENTIAL

    def __init__(
        self,
        target: TokenGenerator,
        stop: Optional[StopPredicate] = None,
        retry: Optional[RetryPolicy] = None,
        on_event: Optional[EventSink] = None,
        tokenizer: Callable[[str], list[str]] = tokenize,
    ):
        super().__init__(target, stop=stop, retry=retry, on_event=on_event, tokenizer=tokenizer)

    def _efficiency(self, state: GenerationState) -> int:
        # Nothing is speculated, so nothing is wasted.
        return 100

    async def _step(
        self, state: GenerationState, request: DecodingRequest
    ) -> Optional[Union[DraftError, TargetError]]:
        round_start = time.perf_counter()
        result = await self._call(self.target, state, 1, GeneratorRole.TARGET)
        if not isinstance(result, Ok):
            return result

        token = first_token(result, self.tokenize)
        if token is None:
            return TargetError("target generator returned no token", attempts=result.attempts)

        state.append(token)
        state.stats.record_sequential_token()
        await self._emit_tokens(state, [token], TokenStatus.ACCEPTED)

        round_time = (time.perf_counter() - round_start) * 1000
        state.stats.record_round(
            RoundStats(
                drafted=0,
                accepted=1,
                fell_back=False,
                draft_latency_ms=0.0,
                verify_latency_ms=round_time,
                round_time_ms=round_time,
            )
        )
        logger.debug(f"Round {state.round}: token {token!r} in {round_time:.0f}ms")
        await self._emit(
            RoundEvent(
                decoder=self.kind,
                round=state.round,
                drafted=0,
                accepted=1,
                fell_back=False,
                model_calls=state.stats.model_calls,
                tokens_generated=state.stats.accepted,
                efficiency_percent=100,
                round_time_ms=round_time,
                acceptance_rate=1.0,
                draft_latency_ms=0.0,
                verify_latency_ms=state.stats.avg_verify_latency(),
            )
        )
        return None
