"""Benchmark harness: speculative vs. sequential decoding on the same prompt."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel

from .decoding import DecodingOutcome, DecodingRequest
from .interfaces import RetryPolicy, TokenGenerator
from .schemas import ComparisonReport
from .sequential import SequentialDecoder
from .speculator import SpeculativeDecoder
from .stopping import StopPredicate

logger = logging.getLogger(__name__)


@dataclass
class Comparison:
    speculative: DecodingOutcome
    sequential: DecodingOutcome
    speedup: Optional[float] = None
    model_calls_saved: Optional[int] = None

    @property
    def failed(self) -> bool:
        return not (self.speculative.ok and self.sequential.ok)

    def summary(self) -> ComparisonReport:
        return ComparisonReport(
            speculative=self.speculative.result,
            sequential=self.sequential.result,
            speedup=self.speedup,
            model_calls_saved=self.model_calls_saved,
            speculative_error=str(self.speculative.failure) if self.speculative.failure else None,
            sequential_error=str(self.sequential.failure) if self.sequential.failure else None,
        )


class BenchmarkHarness:
    """Runs one speculative and one sequential decoder concurrently.

    The two runs are independent: each owns its own state seeded from the
    same prompt, and they only share the generator objects. If ``events``
    is given, both decoders publish their events into it.
    """

    def __init__(
        self,
        draft: TokenGenerator,
        target: TokenGenerator,
        stop: Optional[StopPredicate] = None,
        retry: Optional[RetryPolicy] = None,
        events: Optional[asyncio.Queue] = None,
    ):
        self.draft = draft
        self.target = target
        self.stop = stop
        self.retry = retry
        self.events = events

    async def _publish(self, event: BaseModel) -> None:
        if self.events is not None:
            await self.events.put(event)

    async def compare(self, prompt: str, target_length: int, k: int = 4) -> Comparison:
        request = DecodingRequest(prompt=prompt, target_length=target_length, k=k)
        on_event = self._publish if self.events is not None else None

        speculative = SpeculativeDecoder(
            self.draft, self.target, stop=self.stop, retry=self.retry, on_event=on_event
        )
        sequential = SequentialDecoder(
            self.target, stop=self.stop, retry=self.retry, on_event=on_event
        )

        logger.info(f"Comparing on prompt={prompt[:50]!r} target_length={target_length} k={k}")
        spec_outcome, seq_outcome = await asyncio.gather(
            speculative.run(request), sequential.run(request)
        )
        comparison = Comparison(speculative=spec_outcome, sequential=seq_outcome)

        if comparison.failed:
            logger.warning(
                f"Comparison incomplete: speculative={spec_outcome.failure}, "
                f"sequential={seq_outcome.failure}"
            )
            return comparison

        spec_elapsed = spec_outcome.result.elapsed_seconds
        comparison.speedup = (
            seq_outcome.result.elapsed_seconds / spec_elapsed if spec_elapsed > 0 else 0.0
        )
        comparison.model_calls_saved = (
            seq_outcome.result.model_calls - spec_outcome.result.model_calls
        )
        logger.info(
            f"Speedup {comparison.speedup:.2f}x, "
            f"{comparison.model_calls_saved} model calls saved, "
            f"efficiency {spec_outcome.result.efficiency_percent}%"
        )
        return comparison
