"""
Pydantic model for service configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

# Maps accepted request formats to extraction metadata
FORMAT_MAP = {
    "mp3": {"name": "MP3", "audio_format": "mp3", "lossless": False},
    "m4a": {"name": "AAC (M4A)", "audio_format": "m4a", "lossless": False},
    "opus": {"name": "Opus", "audio_format": "opus", "lossless": False},
    "flac": {"name": "FLAC", "audio_format": "flac", "lossless": True},
    "wav": {"name": "WAV", "audio_format": "wav", "lossless": True},
}

SUPPORTED_FORMATS = tuple(FORMAT_MAP)

KNOWN_BROWSERS = {
    "brave",
    "chrome",
    "chromium",
    "edge",
    "firefox",
    "opera",
    "safari",
    "vivaldi",
    "whale",
}


def get_format_info(fmt: str) -> dict:
    """Gets all information for a given format from the central map."""
    return FORMAT_MAP.get(
        fmt, {"name": "Unknown", "audio_format": fmt, "lossless": False}
    )


class ServiceConfig(BaseModel):
    """A validated configuration model for the service."""

    # Storage
    downloads_dir: str
    database_path: str
    public_prefix: str = "/downloads"

    # Lifecycle windows
    cache_ttl_seconds: int = 7 * 86400
    job_retention_seconds: int = 3600
    sweep_interval_seconds: int = 3600
    sweep_initial_delay_seconds: int = 10

    # Extraction
    max_concurrent_extractions: int = 4
    ytdlp_path: str = "yt-dlp"
    default_browser: str = "chrome"
    fallback_browsers: list[str] = Field(
        default_factory=lambda: ["firefox", "edge", "brave", "chromium"]
    )
    force_ipv4: bool = True
    verify_artifacts: bool = True

    # Metadata lookup
    metadata_timeout_seconds: int = 10

    # Optional JSON-lines event log directory
    event_log_dir: str = ""

    # Internal field not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("cache_ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """The TTL must comfortably exceed the longest extraction."""
        if v < 600:
            raise ValueError("cache_ttl_seconds must be at least 600 (10 minutes).")
        return v

    @field_validator("job_retention_seconds")
    @classmethod
    def validate_job_retention(cls, v: int) -> int:
        if v < 60:
            raise ValueError("job_retention_seconds must be at least 60.")
        return v

    @field_validator("sweep_interval_seconds", "sweep_initial_delay_seconds")
    @classmethod
    def validate_sweep_timing(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Sweep timings cannot be negative.")
        return v

    @field_validator("max_concurrent_extractions")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensures a reasonable number of concurrent extractions."""
        if v < 1 or v > 32:
            raise ValueError("max_concurrent_extractions must be between 1 and 32.")
        return v

    @field_validator("default_browser")
    @classmethod
    def validate_default_browser(cls, v: str) -> str:
        if v and v.lower() not in KNOWN_BROWSERS:
            raise ValueError(f"Unknown browser '{v}' for credential extraction.")
        return v.lower()

    @field_validator("fallback_browsers")
    @classmethod
    def validate_fallback_browsers(cls, v: list[str]) -> list[str]:
        browsers = [b.strip().lower() for b in v if b and b.strip()]
        unknown = [b for b in browsers if b not in KNOWN_BROWSERS]
        if unknown:
            raise ValueError(f"Unknown fallback browsers: {', '.join(unknown)}")
        # Preserve order, drop duplicates
        return list(dict.fromkeys(browsers))

    @field_validator("public_prefix")
    @classmethod
    def validate_public_prefix(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("public_prefix must start with '/'.")
        return v.rstrip("/") or "/"

    @model_validator(mode="after")
    def validate_sweep_against_ttl(self) -> "ServiceConfig":
        """A sweep interval longer than the TTL would let stale entries linger."""
        if self.sweep_interval_seconds > self.cache_ttl_seconds:
            raise ValueError(
                "sweep_interval_seconds cannot be longer than cache_ttl_seconds."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
