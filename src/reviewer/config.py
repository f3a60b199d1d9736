"""Centralized application configuration.

All settings are read from environment variables (or a .env.review file).
The LLM settings are optional: without LLM_BASE_URL and LLM_MODEL the
review still runs and only the narrative summary is skipped.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from reviewer.classify import Thresholds


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env.review", env_file_encoding="utf-8",
    )

    # Evaluation backend
    engine_backend: Literal["cloud", "local"] = "cloud"

    # Lichess cloud evaluation
    cloud_eval_url: str = "https://lichess.org/api/cloud-eval"
    lichess_api_token: str | None = None
    pacing_interval: float = 0.3
    request_timeout: float = 10.0

    # Local UCI worker
    stockfish_path: str = "stockfish"
    search_depth: int = 15
    search_timeout: float = 30.0
    pv_prefix: int = 4

    # Orchestration
    evaluation_retries: int = 1
    key_moment_limit: int = 5

    # Classification thresholds (signed centipawn change for the mover)
    great_threshold: int = -10
    good_threshold: int = -40
    inaccuracy_threshold: int = -100
    mistake_threshold: int = -200
    annotation_threshold: int = -100

    # LLM (OpenAI-compatible: Ollama, OpenRouter, litellm)
    llm_base_url: str | None = None
    llm_model: str | None = None
    llm_api_key: str | None = None
    llm_timeout: float = 30.0

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(
            great=self.great_threshold,
            good=self.good_threshold,
            inaccuracy=self.inaccuracy_threshold,
            mistake=self.mistake_threshold,
            annotate_below=self.annotation_threshold,
        )

    @property
    def narration_enabled(self) -> bool:
        return bool(self.llm_base_url and self.llm_model)
