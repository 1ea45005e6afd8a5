from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fastrelay.datastructures import PollPolicy, RateLimitPolicy, RetryPolicy, SinkPolicy

# Pub/Sub rejects ack deadlines above ten minutes.
MAX_VISIBILITY_BACKOFF_SECS = 600


class Settings(BaseSettings):
    """Relay configuration, read from ``FASTRELAY_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="FASTRELAY_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    project_id: str = Field(min_length=1)
    subscription_name: str = Field(min_length=1)
    topic_name: str = Field(min_length=1)
    dead_letter_topic: str = Field(min_length=1)
    sink_url: str = Field(min_length=1)

    max_retries: int = Field(default=3, ge=0)
    max_message_size: int = Field(default=10_000, gt=0)
    poll_interval_ms: int = Field(default=1000, gt=0)
    visibility_backoff_secs: int = Field(default=30, ge=0, le=MAX_VISIBILITY_BACKOFF_SECS)
    rate_limit: int = Field(default=10, gt=0)
    rate_limit_interval_secs: float = Field(default=1.0, gt=0)
    max_messages: int = Field(default=10, gt=0, le=1000)
    wait_seconds: float = Field(default=20.0, gt=0)
    sink_timeout_secs: float = Field(default=30.0, gt=0)
    concurrent_dispatch: bool = True
    dead_letter_permanent_failures: bool = False
    autocreate: bool = False

    @field_validator("sink_url")
    @classmethod
    def _ensure_http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"The sink url must be an http(s) url, got '{value}'")
        return value

    @property
    def poll_interval_secs(self) -> float:
        return self.poll_interval_ms / 1000

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            visibility_backoff_secs=self.visibility_backoff_secs,
            dead_letter_permanent_failures=self.dead_letter_permanent_failures,
        )

    def poll_policy(self) -> PollPolicy:
        return PollPolicy(
            max_messages=self.max_messages,
            wait_seconds=self.wait_seconds,
            interval_secs=self.poll_interval_secs,
            concurrent_dispatch=self.concurrent_dispatch,
        )

    def rate_limit_policy(self) -> RateLimitPolicy:
        return RateLimitPolicy(limit=self.rate_limit, interval_secs=self.rate_limit_interval_secs)

    def sink_policy(self) -> SinkPolicy:
        return SinkPolicy(
            max_message_size=self.max_message_size, timeout_secs=self.sink_timeout_secs
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
