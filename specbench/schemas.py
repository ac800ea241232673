from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Enums ---

class DecoderKind(str, Enum):
    SPECULATIVE = "speculative"
    SEQUENTIAL = "sequential"


class TokenStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FALLBACK = "fallback"


class EventType(str, Enum):
    TOKEN = "token"
    ROUND = "round"
    DONE = "done"
    ERROR = "error"
    COMPARISON = "comparison"


# --- Results ---

class DecodingRunResult(BaseModel):
    """Summary of one finished (or aborted) decoding run."""

    model_config = ConfigDict(frozen=True)

    elapsed_seconds: float
    model_calls: int
    tokens_generated: int
    efficiency_percent: int
    tokens_per_second: int
    text: str
    model_calls_saved: int = 0
    rounds: int = 0


class ComparisonReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    speculative: DecodingRunResult
    sequential: DecodingRunResult
    speedup: Optional[float] = None
    model_calls_saved: Optional[int] = None
    speculative_error: Optional[str] = None
    sequential_error: Optional[str] = None


# --- Incoming ---

class CompareRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    target_length: Optional[int] = Field(default=None, ge=1, le=4096)
    k: Optional[int] = Field(default=None, ge=1, le=32)


# --- Outgoing events ---

class TokenEvent(BaseModel):
    type: str = EventType.TOKEN
    decoder: DecoderKind
    round: int
    position: int
    token: str
    status: TokenStatus


class RoundEvent(BaseModel):
    type: str = EventType.ROUND
    decoder: DecoderKind
    round: int
    drafted: int
    accepted: int
    fell_back: bool
    model_calls: int
    tokens_generated: int
    efficiency_percent: int
    round_time_ms: float
    # Rolling-window KPIs over the last rounds of this run
    acceptance_rate: float
    draft_latency_ms: float
    verify_latency_ms: float


class DoneEvent(BaseModel):
    type: str = EventType.DONE
    decoder: DecoderKind
    result: DecodingRunResult


class ErrorEvent(BaseModel):
    type: str = EventType.ERROR
    message: str
    decoder: Optional[DecoderKind] = None
    role: Optional[str] = None
    round: Optional[int] = None
    partial: Optional[DecodingRunResult] = None


class ComparisonEvent(BaseModel):
    type: str = EventType.COMPARISON
    report: ComparisonReport
