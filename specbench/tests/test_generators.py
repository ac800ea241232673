"""Tests for the generator boundary: tagged results, retries, timeouts and backends."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from specbench.interfaces import (
    DraftError,
    GeneratorError,
    GeneratorRole,
    Ok,
    RetryPolicy,
    TargetError,
    call_generator,
)
from specbench.mock_model import MockGenerator, ScriptedGenerator, ThreadedGenerator, introduce_typo
from specbench.target_model import CompletionsGenerator
from specbench.tokenizer import tokenize


# --- call_generator ---


@pytest.mark.asyncio
async def test_ok_result():
    gen = ScriptedGenerator(target=["fox"])
    result = await call_generator(gen, "ctx", 1, GeneratorRole.TARGET, RetryPolicy())
    assert result == Ok(text="fox", attempts=1)


@pytest.mark.asyncio
async def test_transient_error_is_retried():
    gen = ScriptedGenerator(target=[GeneratorError("busy", transient=True), "fox"])
    policy = RetryPolicy(max_retries=2, backoff_s=0.0)

    result = await call_generator(gen, "ctx", 1, GeneratorRole.TARGET, policy)

    assert isinstance(result, Ok)
    assert result.text == "fox"
    assert result.attempts == 2
    assert len(gen.calls) == 2


@pytest.mark.asyncio
async def test_permanent_error_is_not_retried():
    gen = ScriptedGenerator(draft=[GeneratorError("bad input"), "never"])
    policy = RetryPolicy(max_retries=3, backoff_s=0.0)

    result = await call_generator(gen, "ctx", 2, GeneratorRole.DRAFT, policy)

    assert isinstance(result, DraftError)
    assert result.role is GeneratorRole.DRAFT
    assert result.attempts == 1
    assert result.message == "bad input"
    assert len(gen.calls) == 1


@pytest.mark.asyncio
async def test_retries_are_bounded():
    busy = [GeneratorError("busy", transient=True) for _ in range(5)]
    gen = ScriptedGenerator(target=busy)
    policy = RetryPolicy(max_retries=2, backoff_s=0.0)

    result = await call_generator(gen, "ctx", 1, GeneratorRole.TARGET, policy)

    assert isinstance(result, TargetError)
    assert result.attempts == 3
    assert len(gen.calls) == 3
    assert "after 3 attempt(s)" in str(result)


@pytest.mark.asyncio
async def test_timeout_becomes_generator_failure():
    gen = ScriptedGenerator(target=["slow", "slow"], delay_s=1.0)
    policy = RetryPolicy(timeout_s=0.01, max_retries=1, backoff_s=0.0)

    result = await call_generator(gen, "ctx", 1, GeneratorRole.TARGET, policy)

    assert isinstance(result, TargetError)
    assert result.attempts == 2
    assert "timed out" in result.message
    assert isinstance(result.cause, asyncio.TimeoutError)


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_permanent_failure():
    gen = ScriptedGenerator(target=[RuntimeError("CUDA OOM"), "never"])
    policy = RetryPolicy(max_retries=3, backoff_s=0.0)

    result = await call_generator(gen, "ctx", 1, GeneratorRole.TARGET, policy)

    assert isinstance(result, TargetError)
    assert result.attempts == 1
    assert result.message == "RuntimeError: CUDA OOM"
    assert isinstance(result.cause, RuntimeError)
    assert len(gen.calls) == 1


def test_retry_policy_backoff_doubles():
    policy = RetryPolicy(backoff_s=0.5)
    assert [policy.delay_for(i) for i in range(3)] == [0.5, 1.0, 2.0]


@pytest.mark.parametrize(
    "kwargs",
    [{"timeout_s": 0}, {"max_retries": -1}, {"backoff_s": -0.1}],
)
def test_retry_policy_validation(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


# --- MockGenerator ---


@pytest.mark.asyncio
async def test_mock_target_is_deterministic_per_context():
    gen = MockGenerator(seed=3, simulate_latency=False)
    first = await gen.generate("The cat", 6, GeneratorRole.TARGET)
    second = await gen.generate("The cat", 6, GeneratorRole.TARGET)
    assert first == second
    assert len(tokenize(first)) == 6


@pytest.mark.asyncio
async def test_mock_perfect_draft_matches_target():
    gen = MockGenerator(seed=3, draft_accuracy=1.0, simulate_latency=False)
    draft = await gen.generate("The dog", 5, GeneratorRole.DRAFT)
    target = await gen.generate("The dog", 5, GeneratorRole.TARGET)
    assert draft == target


@pytest.mark.asyncio
async def test_mock_continuation_starts_with_space_after_a_word():
    gen = MockGenerator(seed=11, simulate_latency=False)
    text = await gen.generate("The tree", 3, GeneratorRole.TARGET)
    assert text.startswith(" ")


@pytest.mark.asyncio
async def test_mock_counts_calls_per_role():
    gen = MockGenerator(simulate_latency=False)
    await gen.generate("a", 2, GeneratorRole.DRAFT)
    await gen.generate("a", 2, GeneratorRole.TARGET)
    await gen.generate("a", 1, GeneratorRole.TARGET)
    assert gen.calls == {GeneratorRole.DRAFT: 1, GeneratorRole.TARGET: 2}


@pytest.mark.asyncio
async def test_mock_rejects_non_positive_token_count():
    gen = MockGenerator(simulate_latency=False)
    with pytest.raises(GeneratorError):
        await gen.generate("a", 0, GeneratorRole.TARGET)


def test_mock_rejects_bad_accuracy():
    with pytest.raises(ValueError):
        MockGenerator(draft_accuracy=1.5)


def test_introduce_typo_keeps_short_words():
    import random

    assert introduce_typo("to", random.Random(0)) == "to"
    assert len(introduce_typo("machine", random.Random(0))) in (7, 8)


# --- ScriptedGenerator / ThreadedGenerator ---


@pytest.mark.asyncio
async def test_scripted_generator_callable_and_fallback():
    gen = ScriptedGenerator(
        target=[lambda context, n: f"{context}:{n}"],
        fallback=lambda context, n, role: role.value,
    )
    assert await gen.generate("x", 2, GeneratorRole.TARGET) == "x:2"
    assert await gen.generate("x", 2, GeneratorRole.TARGET) == "target"
    assert await gen.generate("x", 2, GeneratorRole.DRAFT) == "draft"


@pytest.mark.asyncio
async def test_threaded_generator_runs_blocking_function():
    gen = ThreadedGenerator(lambda context, n, role: f"{role.value}:{n}:{context}")
    assert await gen.generate("ctx", 3, GeneratorRole.DRAFT) == "draft:3:ctx"


# --- CompletionsGenerator ---


class FakeCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def _client(completions: FakeCompletions):
    return SimpleNamespace(completions=completions)


def _request():
    return httpx.Request("POST", "http://localhost/v1/completions")


@pytest.mark.asyncio
async def test_completions_generator_routes_roles_to_models():
    completions = FakeCompletions(
        response=SimpleNamespace(choices=[SimpleNamespace(text=" brown fox")])
    )
    gen = CompletionsGenerator("small", "large", client=_client(completions))

    assert await gen.generate("The quick", 2, GeneratorRole.DRAFT) == " brown fox"
    await gen.generate("The quick", 1, GeneratorRole.TARGET)

    assert [r["model"] for r in completions.requests] == ["small", "large"]
    assert completions.requests[0]["max_tokens"] == 2
    assert completions.requests[0]["prompt"] == "The quick"


@pytest.mark.asyncio
async def test_completions_connection_error_is_transient():
    completions = FakeCompletions(error=openai.APIConnectionError(request=_request()))
    gen = CompletionsGenerator("small", "large", client=_client(completions))

    with pytest.raises(GeneratorError) as exc_info:
        await gen.generate("ctx", 1, GeneratorRole.TARGET)
    assert exc_info.value.transient


@pytest.mark.asyncio
async def test_completions_bad_request_is_permanent():
    response = httpx.Response(400, request=_request())
    completions = FakeCompletions(
        error=openai.BadRequestError("bad prompt", response=response, body=None)
    )
    gen = CompletionsGenerator("small", "large", client=_client(completions))

    with pytest.raises(GeneratorError) as exc_info:
        await gen.generate("ctx", 1, GeneratorRole.TARGET)
    assert not exc_info.value.transient


@pytest.mark.asyncio
async def test_completions_without_choices_fails():
    completions = FakeCompletions(response=SimpleNamespace(choices=[]))
    gen = CompletionsGenerator("small", "large", client=_client(completions))

    with pytest.raises(GeneratorError):
        await gen.generate("ctx", 1, GeneratorRole.DRAFT)
