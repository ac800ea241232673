"""State, request and outcome types shared by the decoder strategies."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from .interfaces import (
    CallResult,
    DraftError,
    GeneratorRole,
    Ok,
    RetryPolicy,
    TargetError,
    TokenGenerator,
    call_generator,
)
from .metrics import StatsAccumulator
from .schemas import DecoderKind, DecodingRunResult, DoneEvent, ErrorEvent, TokenEvent, TokenStatus
from .stopping import SentenceBoundaryStop, StopPredicate
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

EventSink = Callable[[BaseModel], Awaitable[None]]


@dataclass(frozen=True)
class DecodingRequest:
    prompt: str
    target_length: int
    k: int = 4

    def __post_init__(self):
        if not self.prompt:
            raise ValueError("prompt must be non-empty")
        if self.target_length < 1:
            raise ValueError("target_length must be a positive integer")
        if self.k < 1:
            raise ValueError("k must be a positive integer")


@dataclass
class GenerationState:
    """Mutable state owned by exactly one decoder run."""

    context: str
    output: str = ""
    round: int = 0
    stats: StatsAccumulator = field(default_factory=StatsAccumulator)

    def append(self, text: str) -> None:
        self.output += text
        self.context += text


@dataclass
class DecodingOutcome:
    """Terminal result of a run: the summary, the final state and any failure."""

    result: DecodingRunResult
    state: GenerationState
    failure: Optional[Union[DraftError, TargetError]] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class Decoder:
    """Base class: generator access, event publishing and run bookkeeping.

    Subclasses implement ``_step`` (one round) and may override
    ``_efficiency``.
    """

    kind: DecoderKind

    def __init__(
        self,
        target: TokenGenerator,
        stop: Optional[StopPredicate] = None,
        retry: Optional[RetryPolicy] = None,
        on_event: Optional[EventSink] = None,
        tokenizer: Callable[[str], list[str]] = tokenize,
    ):
        self.target = target
        self.stop = stop or SentenceBoundaryStop()
        self.retry = retry or RetryPolicy()
        self.on_event = on_event
        self.tokenize = tokenizer

    async def _call(
        self, generator: TokenGenerator, state: GenerationState, num_tokens: int, role: GeneratorRole
    ) -> CallResult:
        return await call_generator(generator, state.context, num_tokens, role, self.retry)

    async def _emit(self, event: BaseModel) -> None:
        if self.on_event is not None:
            await self.on_event(event)

    async def _emit_tokens(
        self, state: GenerationState, tokens: list[str], status: TokenStatus, start: int = 0
    ) -> None:
        for offset, token in enumerate(tokens):
            await self._emit(
                TokenEvent(
                    decoder=self.kind,
                    round=state.round,
                    position=start + offset,
                    token=token,
                    status=status,
                )
            )

    def _efficiency(self, state: GenerationState) -> int:
        return state.stats.efficiency_percent()

    def _build_result(self, state: GenerationState, elapsed: float) -> DecodingRunResult:
        return DecodingRunResult(
            elapsed_seconds=elapsed,
            model_calls=state.stats.model_calls,
            tokens_generated=state.stats.accepted,
            efficiency_percent=self._efficiency(state),
            tokens_per_second=state.stats.tokens_per_second(elapsed),
            text=state.output,
            model_calls_saved=state.stats.model_calls_saved,
            rounds=state.stats.rounds,
        )

    async def _step(
        self, state: GenerationState, request: DecodingRequest
    ) -> Optional[Union[DraftError, TargetError]]:
        raise NotImplementedError

    async def run(self, request: DecodingRequest) -> DecodingOutcome:
        """Decode until the stop predicate holds or a generator call fails.

        Never raises for generator failures: the partial state comes back
        in the outcome next to the failure.
        """
        state = GenerationState(context=request.prompt)
        start = time.perf_counter()
        failure = None

        logger.info(
            f"{self.kind.value}: starting (target_length={request.target_length}, k={request.k})"
        )
        while True:
            state.round += 1
            failure = await self._step(state, request)
            if failure is not None or self.stop(state, request):
                break

        elapsed = time.perf_counter() - start
        result = self._build_result(state, elapsed)

        if failure is not None:
            logger.error(
                f"{self.kind.value}: aborted in round {state.round} "
                f"after {len(state.output)} chars: {failure}"
            )
            await self._emit(
                ErrorEvent(
                    message=str(failure),
                    decoder=self.kind,
                    role=failure.role.value,
                    round=state.round,
                    partial=result,
                )
            )
        else:
            logger.info(
                f"{self.kind.value}: done, {result.tokens_generated} tokens in "
                f"{result.rounds} rounds, {result.model_calls} calls, {elapsed:.2f}s"
            )
            await self._emit(DoneEvent(decoder=self.kind, result=result))

        return DecodingOutcome(result=result, state=state, failure=failure)


def first_token(result: Ok, tokenizer: Callable[[str], list[str]]) -> Optional[str]:
    tokens = tokenizer(result.text)
    return tokens[0] if tokens else None
