"""OpenAI-compatible completions client serving the draft and target roles."""

from __future__ import annotations

import logging
import time
from typing import Optional

import openai
from openai import AsyncOpenAI

from .interfaces import GeneratorError, GeneratorRole

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class CompletionsGenerator:
    """Generates continuations through a ``/v1/completions`` endpoint.

    Each role maps to its own model name on the same server, e.g. a small
    and a large checkpoint served side by side.
    """

    def __init__(
        self,
        draft_model: str,
        target_model: str,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.models = {
            GeneratorRole.DRAFT: draft_model,
            GeneratorRole.TARGET: target_model,
        }
        self.temperature = temperature
        self.client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or "EMPTY",
            max_retries=0,  # retries are handled by call_generator
        )

    async def generate(self, context: str, num_tokens: int, role: GeneratorRole) -> str:
        """Continue ``context`` by up to ``num_tokens`` model tokens.

        Args:
            context: Prompt plus all text accepted so far.
            num_tokens: Requested continuation length; the server may stop early.
            role: Selects the model answering the call.

        Returns:
            The raw continuation text.

        Raises:
            GeneratorError: The request failed or returned no choices.
        """
        model = self.models[role]
        t0 = time.perf_counter()
        try:
            response = await self.client.completions.create(
                model=model,
                prompt=context,
                max_tokens=num_tokens,
                temperature=self.temperature,
            )
        except _TRANSIENT_ERRORS as e:
            raise GeneratorError(f"{model}: {e}", transient=True) from e
        except openai.APIError as e:
            raise GeneratorError(f"{model}: {e}") from e

        elapsed = (time.perf_counter() - t0) * 1000
        if not response.choices:
            raise GeneratorError(f"{model}: response contained no choices")

        text = response.choices[0].text or ""
        logger.debug(
            f"  {role.value.upper()} {model} returned {text!r} "
            f"for {num_tokens} tokens in {elapsed:.0f}ms"
        )
        return text
