"""Generator boundary: protocol, tagged call results and retry handling."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger(__name__)


class GeneratorRole(str, Enum):
    DRAFT = "draft"
    TARGET = "target"


class GeneratorError(Exception):
    """Raised by a generator when a call cannot produce text.

    ``transient`` marks failures worth retrying (timeouts, overload,
    dropped connections).
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


@runtime_checkable
class TokenGenerator(Protocol):
    async def generate(
        self, context: str, num_tokens: int, role: GeneratorRole
    ) -> str: ...


# --- Tagged call results ---


@dataclass(frozen=True)
class Ok:
    text: str
    attempts: int = 1


@dataclass(frozen=True)
class GeneratorFailure:
    message: str
    attempts: int = 1
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    role: GeneratorRole = field(init=False, default=GeneratorRole.TARGET)

    def __str__(self) -> str:
        return f"{self.role.value} generator failed after {self.attempts} attempt(s): {self.message}"


@dataclass(frozen=True)
class DraftError(GeneratorFailure):
    role: GeneratorRole = field(init=False, default=GeneratorRole.DRAFT)


@dataclass(frozen=True)
class TargetError(GeneratorFailure):
    role: GeneratorRole = field(init=False, default=GeneratorRole.TARGET)


CallResult = Union[Ok, DraftError, TargetError]


def failure_for(role: GeneratorRole, message: str, **kwargs) -> GeneratorFailure:
    if role is GeneratorRole.DRAFT:
        return DraftError(message, **kwargs)
    return TargetError(message, **kwargs)


@dataclass(frozen=True)
class RetryPolicy:
    """Per-call timeout and bounded exponential backoff."""

    timeout_s: Optional[float] = 30.0
    max_retries: int = 2
    backoff_s: float = 0.1

    def __post_init__(self):
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_s < 0:
            raise ValueError("backoff_s must be >= 0")

    def delay_for(self, attempt: int) -> float:
        return self.backoff_s * (2 ** attempt)


async def call_generator(
    generator: TokenGenerator,
    context: str,
    num_tokens: int,
    role: GeneratorRole,
    policy: RetryPolicy,
) -> CallResult:
    """Make one logical generator call and return a tagged result.

    Exceptions raised by the generator never escape: they come back as
    ``DraftError`` or ``TargetError`` depending on ``role``. Timeouts and
    transient ``GeneratorError``s are retried up to ``policy.max_retries``
    times; any other exception fails the call at once.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            if policy.timeout_s is None:
                text = await generator.generate(context, num_tokens, role)
            else:
                text = await asyncio.wait_for(
                    generator.generate(context, num_tokens, role),
                    timeout=policy.timeout_s,
                )
            return Ok(text=text, attempts=attempt)
        except asyncio.TimeoutError as e:
            error: BaseException = e
            message = f"timed out after {policy.timeout_s}s"
            transient = True
        except GeneratorError as e:
            error = e
            message = str(e)
            transient = e.transient
        except Exception as e:
            # Anything else from a backend is a bug or a crash, never retried.
            error = e
            message = f"{type(e).__name__}: {e}"
            transient = False

        if not transient or attempt > policy.max_retries:
            logger.error(f"{role.value} call failed (attempt {attempt}): {message}")
            return failure_for(role, message, attempts=attempt, cause=error)

        delay = policy.delay_for(attempt - 1)
        logger.warning(
            f"{role.value} call failed (attempt {attempt}): {message}; "
            f"retrying in {delay:.2f}s"
        )
        await asyncio.sleep(delay)
