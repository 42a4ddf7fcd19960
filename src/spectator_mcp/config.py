"""Server configuration via environment variables."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator

DEFAULT_RESTRICTED_HOSTS: tuple[str, ...] = (
    "youtube.com",
    "youtu.be",
    "vimeo.com",
    "tiktok.com",
    "instagram.com",
    "facebook.com",
    "twitter.com",
    "x.com",
    "dailymotion.com",
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)

VALID_TRANSPORTS = {"stdio", "http", "sse"}


def _split_hosts(raw: str) -> list[str]:
    """Parse a comma-separated host list, dropping blanks and leading dots."""
    return [h.strip().lower().lstrip(".") for h in raw.split(",") if h.strip()]


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


class ServerConfig(BaseModel):
    """Runtime configuration resolved from environment."""

    gemini_api_key: str = Field(default="")
    model: str = Field(default="gemini-3-flash-preview")
    api_base_url: str = Field(default="https://generativelanguage.googleapis.com")
    upload_display_name: str = Field(default="spectator_clip")
    poll_interval_seconds: float = Field(default=4.0)
    http_timeout_seconds: float = Field(default=60.0)
    restricted_hosts: list[str] = Field(default_factory=lambda: list(DEFAULT_RESTRICTED_HOSTS))
    ytdlp_binary: str = Field(default="yt-dlp")
    ffmpeg_binary: str = Field(default="ffmpeg")
    ffprobe_binary: str = Field(default="ffprobe")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    media_warn_mb: int = Field(default=100)
    enforce_media_limit: bool = Field(default=False)
    redirect_only: bool = Field(default=False)
    allow_private_hosts: bool = Field(default=False)
    jpeg_quality: int = Field(default=90)
    max_sessions: int = Field(default=20)
    session_timeout_hours: int = Field(default=2)
    transport: str = Field(default="stdio")
    http_host: str = Field(default="127.0.0.1")
    http_port: int = Field(default=8000)

    @field_validator("poll_interval_seconds", "http_timeout_seconds")
    @classmethod
    def validate_positive_floats(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Intervals and timeouts must be > 0")
        return value

    @field_validator("media_warn_mb", "max_sessions", "session_timeout_hours")
    @classmethod
    def validate_positive_ints(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Configuration values must be >= 1")
        return value

    @field_validator("jpeg_quality")
    @classmethod
    def validate_jpeg_quality(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("jpeg_quality must be between 1 and 100")
        return value

    @field_validator("transport")
    @classmethod
    def validate_transport(cls, value: str) -> str:
        transport = value.strip().lower()
        if transport not in VALID_TRANSPORTS:
            allowed = ", ".join(sorted(VALID_TRANSPORTS))
            raise ValueError(f"Invalid transport '{value}'. Allowed: {allowed}")
        return transport

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def media_warn_bytes(self) -> int:
        """Advisory size threshold in bytes."""
        return self.media_warn_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Build config from environment variables."""
        hosts_raw = os.getenv("SPECTATOR_RESTRICTED_HOSTS", "")
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            model=os.getenv("GEMINI_MODEL", "gemini-3-flash-preview"),
            api_base_url=os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com"),
            upload_display_name=os.getenv("SPECTATOR_UPLOAD_NAME", "spectator_clip"),
            poll_interval_seconds=float(os.getenv("SPECTATOR_POLL_INTERVAL", "4.0")),
            http_timeout_seconds=float(os.getenv("SPECTATOR_HTTP_TIMEOUT", "60.0")),
            restricted_hosts=_split_hosts(hosts_raw) if hosts_raw.strip() else list(DEFAULT_RESTRICTED_HOSTS),
            ytdlp_binary=os.getenv("SPECTATOR_YTDLP", "yt-dlp"),
            ffmpeg_binary=os.getenv("SPECTATOR_FFMPEG", "ffmpeg"),
            ffprobe_binary=os.getenv("SPECTATOR_FFPROBE", "ffprobe"),
            user_agent=os.getenv("SPECTATOR_USER_AGENT", DEFAULT_USER_AGENT),
            media_warn_mb=int(os.getenv("SPECTATOR_MEDIA_WARN_MB", "100")),
            enforce_media_limit=_env_flag("SPECTATOR_ENFORCE_MEDIA_LIMIT"),
            redirect_only=_env_flag("SPECTATOR_REDIRECT_ONLY"),
            allow_private_hosts=_env_flag("SPECTATOR_ALLOW_PRIVATE_HOSTS"),
            jpeg_quality=int(os.getenv("SPECTATOR_JPEG_QUALITY", "90")),
            max_sessions=int(os.getenv("SPECTATOR_MAX_SESSIONS", "20")),
            session_timeout_hours=int(os.getenv("SPECTATOR_SESSION_TIMEOUT_HOURS", "2")),
            transport=os.getenv("SPECTATOR_TRANSPORT", "stdio"),
            http_host=os.getenv("SPECTATOR_HOST", "127.0.0.1"),
            http_port=int(os.getenv("SPECTATOR_PORT", "8000")),
        )


_config: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Return the global config singleton, creating it on first access."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def update_config(**overrides: object) -> ServerConfig:
    """Patch the live config, re-running validation."""
    global _config
    cfg = get_config()
    data = cfg.model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    _config = ServerConfig(**data)
    return _config
