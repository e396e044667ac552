"""Configuration management for the recipe pipeline.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults

Nothing here creates a model client. The gateway receives an explicit
GatewayConfig built from Config, so several pipelines with different
settings can live in one process.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


# Load .env file (if exists, silently continues if missing)
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and backoff settings for one gateway call.

    A call makes at most ``1 + max_retries`` attempts. The delay before retry
    ``n`` (0-based) is ``base_delay * multiplier**n`` plus a random jitter in
    ``[0, max_jitter]``.
    """

    timeout: float = 20.0
    max_retries: int = 2
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_jitter: float = 0.5

    def delay_for(self, retry_index: int, jitter_fraction: float = 0.0) -> float:
        """Backoff delay in seconds before the given retry."""
        return self.base_delay * (self.multiplier**retry_index) + self.max_jitter * jitter_fraction


@dataclass(frozen=True)
class GatewayConfig:
    """Explicit settings handed to the model transport and gateway."""

    api_key: str
    text_model: str = "gemini-3-flash-preview"
    image_model: str = "gemini-2.5-flash-image"
    recipe_count: int = 3
    temperature: float = 0.7
    max_output_tokens: int = 8192
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True)
class ImageSettings:
    """Limits applied to photos before they are sent upstream."""

    max_size_mb: int = 5
    compress: bool = True
    compress_threshold_kb: int = 300
    max_width: int = 1024


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        # Recipe generation model (text in, JSON out)
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
        # Vision model used to list ingredients visible in a photo
        self.IMAGE_DETECTION_MODEL: str = os.getenv("IMAGE_DETECTION_MODEL", "gemini-2.5-flash-image")
        # Number of recipes requested per generation
        self.RECIPE_COUNT: int = int(os.getenv("RECIPE_COUNT", "3"))
        # Sampling temperature for recipe generation
        self.TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.7"))
        # Upper bound on response length; three full recipes fit comfortably in 8192
        self.MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "8192"))

        # Gateway timeout and retry policy
        # REQUEST_TIMEOUT_SECONDS: per-attempt limit
        self.REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "20"))
        # MAX_RETRIES: additional attempts after the first for transient failures
        self.MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "2"))
        # RETRY_BASE_DELAY_SECONDS: first backoff delay, doubled on each retry
        self.RETRY_BASE_DELAY_SECONDS: float = float(os.getenv("RETRY_BASE_DELAY_SECONDS", "1.0"))
        # RETRY_MAX_JITTER_SECONDS: upper bound of the random jitter added to each delay
        self.RETRY_MAX_JITTER_SECONDS: float = float(os.getenv("RETRY_MAX_JITTER_SECONDS", "0.5"))

        # Request cache
        # CACHE_TTL_SECONDS: lifetime of a successful result
        self.CACHE_TTL_SECONDS: float = float(os.getenv("CACHE_TTL_SECONDS", "600"))
        # CACHE_FAILURE_TTL_SECONDS: cooldown during which a failure is replayed instead of retried
        self.CACHE_FAILURE_TTL_SECONDS: float = float(os.getenv("CACHE_FAILURE_TTL_SECONDS", "30"))
        # CACHE_CAPACITY: max entries before least-recently-used eviction
        self.CACHE_CAPACITY: int = int(os.getenv("CACHE_CAPACITY", "100"))

        # Image handling
        self.MAX_IMAGE_SIZE_MB: int = int(os.getenv("MAX_IMAGE_SIZE_MB", "5"))
        self.COMPRESS_IMG: bool = _env_bool("COMPRESS_IMG", "true")
        # Only images at or above this size (KB) are re-encoded
        self.COMPRESS_IMG_THRESHOLD_KB: int = int(os.getenv("COMPRESS_IMG_THRESHOLD_KB", "300"))

    def validate(self) -> None:
        """Validate required configuration.

        Raises:
            ValueError: If the API key is missing or a value is out of range.
        """
        if not self.GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY environment variable is required")
        if self.RECIPE_COUNT < 1:
            raise ValueError(f"RECIPE_COUNT must be at least 1, got: {self.RECIPE_COUNT}")
        if not (0.0 <= self.TEMPERATURE <= 2.0):
            raise ValueError(f"TEMPERATURE must be between 0.0 and 2.0, got: {self.TEMPERATURE}")
        if self.MAX_OUTPUT_TOKENS < 512:
            raise ValueError(f"MAX_OUTPUT_TOKENS must be at least 512, got: {self.MAX_OUTPUT_TOKENS}")
        if self.REQUEST_TIMEOUT_SECONDS <= 0:
            raise ValueError(
                f"REQUEST_TIMEOUT_SECONDS must be positive, got: {self.REQUEST_TIMEOUT_SECONDS}"
            )
        if self.MAX_RETRIES < 0:
            raise ValueError(f"MAX_RETRIES must be at least 0, got: {self.MAX_RETRIES}")
        if self.RETRY_BASE_DELAY_SECONDS < 0 or self.RETRY_MAX_JITTER_SECONDS < 0:
            raise ValueError("Retry delays must not be negative")
        if self.CACHE_CAPACITY < 1:
            raise ValueError(f"CACHE_CAPACITY must be at least 1, got: {self.CACHE_CAPACITY}")
        if self.CACHE_TTL_SECONDS <= 0 or self.CACHE_FAILURE_TTL_SECONDS < 0:
            raise ValueError("Cache TTLs must be positive")
        if self.MAX_IMAGE_SIZE_MB < 1:
            raise ValueError(f"MAX_IMAGE_SIZE_MB must be at least 1, got: {self.MAX_IMAGE_SIZE_MB}")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout=self.REQUEST_TIMEOUT_SECONDS,
            max_retries=self.MAX_RETRIES,
            base_delay=self.RETRY_BASE_DELAY_SECONDS,
            max_jitter=self.RETRY_MAX_JITTER_SECONDS,
        )

    def gateway_config(self) -> GatewayConfig:
        return GatewayConfig(
            api_key=self.GEMINI_API_KEY,
            text_model=self.GEMINI_MODEL,
            image_model=self.IMAGE_DETECTION_MODEL,
            recipe_count=self.RECIPE_COUNT,
            temperature=self.TEMPERATURE,
            max_output_tokens=self.MAX_OUTPUT_TOKENS,
            retry=self.retry_policy(),
        )

    def image_settings(self) -> ImageSettings:
        return ImageSettings(
            max_size_mb=self.MAX_IMAGE_SIZE_MB,
            compress=self.COMPRESS_IMG,
            compress_threshold_kb=self.COMPRESS_IMG_THRESHOLD_KB,
        )


def load_config(validate: bool = True) -> Config:
    """Build a Config from the current environment, validating it by default."""
    config = Config()
    if validate:
        config.validate()
    return config
