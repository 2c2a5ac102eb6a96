"""Configuration management for the QuickBrew news cache pipeline.

This module provides centralized configuration for all pipeline components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Credentials (optional; a missing key skips the capability that needs it):
        GNEWS_API_KEY: GNews search API key (ingestion)
        GROQ_API_KEY: Groq API key (summarization and keeper top-up)

    Generation:
        GROQ_BASE_URL: OpenAI-compatible endpoint for the generative provider
        SUMMARY_MODEL: Model used for five-bullet summaries
        SUMMARY_MAX_TOKENS: Output token budget per summary
        SUMMARY_MAX_INPUT_CHARS: Max characters of extracted article text
        GENERATION_TIMEOUT: Per-call timeout in seconds

    Ingestion:
        GNEWS_LANG / GNEWS_COUNTRY: Search filters (empty = mixed results)
        GNEWS_MAX_PER_PAGE: Items per provider page
        GNEWS_MAX_PAGES: Max pages fetched per category per run
        GNEWS_TIMEOUT: Provider request timeout in seconds
        INGEST_PARALLEL: Categories ingested concurrently

    Summarize run:
        SUMMARY_BATCH_SIZE: Articles picked per run
        SUMMARY_PARALLEL: Concurrent generations

    Retry:
        RETRY_MAX_ATTEMPTS / RETRY_BASE_DELAY / RETRY_MAX_DELAY

    Keeper:
        KEEPER_MIN_READY: Target ready articles per category
        KEEPER_WINDOW_DAYS: Primary lookback window
        KEEPER_FALLBACK_DAYS: Fallback lookback window
        KEEPER_MAX_NEW_SUMMARIES: Top-up cap per category per run
        KEEPER_PARALLEL: Top-up concurrency

    Storage:
        DB_PATH: SQLite database file path

    Logging:
        LOG_DIR, LOG_LEVEL, LOG_BACKUP_COUNT, LOG_MAX_BYTES, LOG_FORMAT

    Optional Features:
        ENABLE_LOGFIRE / LOGFIRE_TOKEN: Logfire tracing
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Parsed integer or default value

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


# Category slug -> GNews boolean search query
CATEGORY_QUERIES: dict[str, str] = {
    "business": "(business OR corporate OR industry)",
    "finance": '(finance OR banking OR fintech OR "interest rates" OR "central bank")',
    "markets": (
        '(markets OR "stock market" OR stocks OR equities OR bonds '
        "OR commodities OR forex OR crypto)"
    ),
    "startups": '(startup OR "seed funding" OR "Series A" OR "venture capital" OR VC)',
    "tech": (
        '(technology OR tech OR software OR AI OR "artificial intelligence" '
        "OR gadgets OR semiconductor)"
    ),
    "politics": "(politics OR government OR election OR policy OR parliament OR congress)",
}

# Display names used when seeding the category table
CATEGORY_NAMES: dict[str, str] = {
    "business": "Business",
    "finance": "Finance",
    "markets": "Markets",
    "startups": "Startups",
    "tech": "Tech",
    "politics": "Politics",
}

DEFAULT_SUMMARY_MODEL = "llama-3.1-8b-instant"
DEFAULT_GROQ_BASE_URL = "https://api.groq.com/openai/v1"


@dataclass
class KeeperSettings:
    """Cache-freshness targets applied to every category.

    Attributes:
        min_ready: Target number of ready (summarized) articles in the cache
        window_days: Primary lookback window
        fallback_days: Wider window used when the primary one stays short
        max_new_summaries: Cap on top-up summaries per category per run
        parallel: Concurrent top-up generations (1 = serialized)
        buffer_factor: Over-selection factor applied to the deficit
        ready_ceiling: Max ready rows read per query
        unsummarized_scan: How many recent articles are scanned for top-up
    """

    min_ready: int = 50
    window_days: int = 3
    fallback_days: int = 7
    max_new_summaries: int = 24
    parallel: int = 1
    buffer_factor: int = 2
    ready_ceiling: int = 300
    unsummarized_scan: int = 400


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    Use Config.load() to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Credentials ===
    gnews_api_key: str = ""  # GNEWS_API_KEY
    groq_api_key: str = ""  # GROQ_API_KEY

    # === Categories ===
    category_queries: dict[str, str] = field(default_factory=lambda: CATEGORY_QUERIES.copy())

    # === Generation ===
    groq_base_url: str = DEFAULT_GROQ_BASE_URL  # GROQ_BASE_URL
    summary_model: str = DEFAULT_SUMMARY_MODEL  # SUMMARY_MODEL
    summary_max_tokens: int = 450  # SUMMARY_MAX_TOKENS
    summary_max_input_chars: int = 6000  # SUMMARY_MAX_INPUT_CHARS
    generation_timeout: float = 20.0  # GENERATION_TIMEOUT
    extract_timeout: int = 15  # EXTRACT_TIMEOUT - Full-text extraction timeout

    # === Ingestion ===
    gnews_lang: str = "en"  # GNEWS_LANG
    gnews_country: str = "us"  # GNEWS_COUNTRY
    gnews_max_per_page: int = 10  # GNEWS_MAX_PER_PAGE - keep 10 on the free plan
    gnews_max_pages: int = 2  # GNEWS_MAX_PAGES
    gnews_timeout: int = 15  # GNEWS_TIMEOUT
    ingest_parallel: int = 2  # INGEST_PARALLEL

    # === Summarize Run ===
    summary_batch_size: int = 12  # SUMMARY_BATCH_SIZE
    summary_parallel: int = 3  # SUMMARY_PARALLEL
    summary_scan: int = 200  # Recent articles scanned for unsummarized work

    # === Retry Behavior ===
    retry_max_attempts: int = 5  # RETRY_MAX_ATTEMPTS
    retry_base_delay: float = 2.5  # RETRY_BASE_DELAY
    retry_max_delay: float = 20.0  # RETRY_MAX_DELAY

    # === Keeper ===
    keeper: KeeperSettings = field(default_factory=KeeperSettings)

    # === Database ===
    db_path: Path = field(default_factory=lambda: Path("quickbrew.db"))  # DB_PATH

    # === Logging Configuration ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    log_level: str = "INFO"  # LOG_LEVEL
    log_backup_count: int = 30  # LOG_BACKUP_COUNT
    log_max_bytes: int = 0  # LOG_MAX_BYTES (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json'

    # === Optional: Observability ===
    enable_logfire: bool = False  # ENABLE_LOGFIRE
    logfire_token: str = ""  # LOGFIRE_TOKEN

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            gnews_api_key=_env("GNEWS_API_KEY"),
            groq_api_key=_env("GROQ_API_KEY"),
            groq_base_url=_env("GROQ_BASE_URL", DEFAULT_GROQ_BASE_URL),
            summary_model=_env("SUMMARY_MODEL", DEFAULT_SUMMARY_MODEL),
            summary_max_tokens=_env_int("SUMMARY_MAX_TOKENS", 450),
            summary_max_input_chars=_env_int("SUMMARY_MAX_INPUT_CHARS", 6000),
            generation_timeout=_env_float("GENERATION_TIMEOUT", 20.0),
            extract_timeout=_env_int("EXTRACT_TIMEOUT", 15),
            gnews_lang=_env("GNEWS_LANG", "en"),
            gnews_country=_env("GNEWS_COUNTRY", "us"),
            gnews_max_per_page=_env_int("GNEWS_MAX_PER_PAGE", 10),
            gnews_max_pages=_env_int("GNEWS_MAX_PAGES", 2),
            gnews_timeout=_env_int("GNEWS_TIMEOUT", 15),
            ingest_parallel=_env_int("INGEST_PARALLEL", 2),
            summary_batch_size=_env_int("SUMMARY_BATCH_SIZE", 12),
            summary_parallel=_env_int("SUMMARY_PARALLEL", 3),
            retry_max_attempts=_env_int("RETRY_MAX_ATTEMPTS", 5),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", 2.5),
            retry_max_delay=_env_float("RETRY_MAX_DELAY", 20.0),
            keeper=KeeperSettings(
                min_ready=_env_int("KEEPER_MIN_READY", 50),
                window_days=_env_int("KEEPER_WINDOW_DAYS", 3),
                fallback_days=_env_int("KEEPER_FALLBACK_DAYS", 7),
                max_new_summaries=_env_int("KEEPER_MAX_NEW_SUMMARIES", 24),
                parallel=_env_int("KEEPER_PARALLEL", 1),
            ),
            db_path=Path(_env("DB_PATH", "quickbrew.db")),
            log_dir=Path(_env("LOG_DIR", "log")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
        )

    def validate(self) -> str | None:
        """Validate configuration values.

        Credentials are deliberately not checked here: a missing key only
        disables the capability that depends on it.

        Returns:
            Error message string if invalid, None if valid.
        """
        if not self.category_queries:
            return "No category queries configured"
        if self.gnews_max_per_page <= 0 or self.gnews_max_pages <= 0:
            return "GNEWS_MAX_PER_PAGE and GNEWS_MAX_PAGES must be positive"
        if self.ingest_parallel <= 0 or self.summary_parallel <= 0:
            return "INGEST_PARALLEL and SUMMARY_PARALLEL must be positive"
        if self.summary_batch_size <= 0:
            return "SUMMARY_BATCH_SIZE must be positive"
        if self.retry_max_attempts <= 0:
            return "RETRY_MAX_ATTEMPTS must be positive"
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            return "RETRY_BASE_DELAY and RETRY_MAX_DELAY must be non-negative"
        keeper = self.keeper
        if keeper.min_ready <= 0:
            return "KEEPER_MIN_READY must be positive"
        if keeper.window_days <= 0:
            return "KEEPER_WINDOW_DAYS must be positive"
        if keeper.fallback_days <= keeper.window_days:
            return "KEEPER_FALLBACK_DAYS must be greater than KEEPER_WINDOW_DAYS"
        if keeper.max_new_summaries < 0:
            return "KEEPER_MAX_NEW_SUMMARIES must be non-negative"
        if keeper.parallel <= 0:
            return "KEEPER_PARALLEL must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
