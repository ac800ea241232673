from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .interfaces import RetryPolicy
from .stopping import BudgetUnit, SentenceBoundaryStop


class Settings(BaseSettings):
    # Generators
    generator: Literal["mock", "openai"] = Field(
        default="mock", description="Backend answering draft and target calls"
    )
    openai_base_url: Optional[str] = Field(
        default=None, description="OpenAI-compatible server, e.g. http://localhost:8000/v1"
    )
    openai_api_key: Optional[str] = Field(default=None)
    draft_model: str = Field(default="distilgpt2", description="Model name for draft calls")
    target_model: str = Field(default="gpt2", description="Model name for target calls")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")

    # Mock backend
    mock_seed: int = Field(default=0)
    mock_draft_accuracy: float = Field(default=0.7, ge=0.0, le=1.0)
    mock_latency: bool = Field(default=True, description="Simulate per-call model latency")

    # Speculation parameters
    speculation_k: int = Field(default=4, ge=1, le=32, description="Tokens to draft per round")
    target_length: int = Field(default=20, ge=1, le=4096, description="Length budget per run")
    budget_unit: BudgetUnit = Field(default=BudgetUnit.WORDS)
    stop_min_fraction: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Budget share required before a sentence end stops a run"
    )
    terminal_punctuation: str = Field(default=".!?")

    # Generator calls
    call_timeout_s: Optional[float] = Field(default=30.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_backoff_s: float = Field(default=0.1, ge=0.0)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    cors_origins: list[str] = Field(default=["http://localhost:5173"])
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="SPECBENCH_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout_s=self.call_timeout_s,
            max_retries=self.max_retries,
            backoff_s=self.retry_backoff_s,
        )

    def stop_predicate(self) -> SentenceBoundaryStop:
        return SentenceBoundaryStop(
            unit=self.budget_unit,
            min_fraction=self.stop_min_fraction,
            terminals=self.terminal_punctuation,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
