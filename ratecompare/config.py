"""Application configuration via Pydantic Settings.

Environment-level settings live in :class:`Settings`. Per-channel adapter
policies and per-property listings are supplied by the admin layer as a JSON
document (``PROPERTIES_FILE``) and validated with the pydantic models below.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratecompare.core.exceptions import ConfigurationError
from ratecompare.core.models import Channel


# Default identity pools. Operators override them through USER_AGENT_POOL /
# HEADER_SET_POOL (JSON) without touching code.
DEFAULT_USER_AGENTS: List[str] = [
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Firefox
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:133.0) Gecko/20100101 Firefox/133.0",
    # Safari on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
    # Edge on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
    # Chrome on Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
]

DEFAULT_HEADER_SETS: List[Dict[str, str]] = [
    {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
    },
    {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
    },
    {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Upgrade-Insecure-Requests": "1",
    },
]


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # App
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Admin-layer configuration (channel policies + property listings)
    PROPERTIES_FILE: str = ""

    # Cache. An empty REDIS_URL keeps the cache in process memory.
    REDIS_URL: str = ""
    CACHE_TTL_SECONDS: int = 15 * 60

    # Fetch pipeline
    MAX_CONCURRENT_FETCHES: int = 3
    CHANNEL_PRIORITY: str = "airbnb,vrbo,booking,expedia"
    AIRBNB_STRATEGY: str = "api"  # 'api' or 'rendered'
    BROWSER_HEADLESS: bool = True

    # Identity rotation pools. Complex values are read from the environment as JSON.
    USER_AGENT_POOL: List[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    HEADER_SET_POOL: List[Dict[str, str]] = Field(
        default_factory=lambda: [dict(h) for h in DEFAULT_HEADER_SETS]
    )

    @model_validator(mode="after")
    def check_pools(self) -> "Settings":
        """Rotation needs at least one identity to pick from."""
        if not self.USER_AGENT_POOL:
            raise ValueError("USER_AGENT_POOL must contain at least one user agent")
        if not self.HEADER_SET_POOL:
            raise ValueError("HEADER_SET_POOL must contain at least one header set")
        if self.AIRBNB_STRATEGY not in ("api", "rendered"):
            raise ValueError("AIRBNB_STRATEGY must be 'api' or 'rendered'")
        return self

    def get_channel_priority(self) -> List[Channel]:
        """Parse CHANNEL_PRIORITY into an ordered list of channels.

        Unknown names are ignored; channels missing from the setting are
        appended in declaration order so every channel has a rank.
        """
        ordered: List[Channel] = []
        for name in self.CHANNEL_PRIORITY.split(","):
            name = name.strip().lower()
            if name in Channel.values() and Channel(name) not in ordered:
                ordered.append(Channel(name))
        ordered.extend(c for c in Channel if c not in ordered)
        return ordered


class RetryPolicy(BaseModel):
    """Bounded exponential backoff for one channel."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=2.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)


class RateLimitPolicy(BaseModel):
    """Outbound request budget for one channel."""

    model_config = ConfigDict(frozen=True)

    requests_per_minute: int = Field(default=30, ge=1)
    burst_limit: int = Field(default=5, ge=1)
    max_per_hour: int = Field(default=100, ge=1)


class HumanDelay(BaseModel):
    """Randomized pacing window in seconds."""

    model_config = ConfigDict(frozen=True)

    min_seconds: float = Field(default=5.0, ge=0)
    max_seconds: float = Field(default=15.0, ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "HumanDelay":
        if self.max_seconds < self.min_seconds:
            raise ValueError("human_delay.max_seconds must be >= min_seconds")
        return self


class EthicalPolicy(BaseModel):
    """Courtesy rules applied before every outbound request."""

    model_config = ConfigDict(frozen=True)

    respect_robots: bool = True
    rotate_identity: bool = True
    human_delay_enabled: bool = True
    human_delay: HumanDelay = Field(default_factory=HumanDelay)


class ChannelAdapterConfig(BaseModel):
    """Immutable configuration for one channel adapter instance."""

    model_config = ConfigDict(frozen=True)

    base_url: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    rate_limit: RateLimitPolicy = Field(default_factory=RateLimitPolicy)
    ethics: EthicalPolicy = Field(default_factory=EthicalPolicy)


class PropertyConfig(BaseModel):
    """One rental property and its listing URL on each channel."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    listings: Dict[Channel, str] = Field(default_factory=dict)

    def listing_url(self, channel: Channel) -> Optional[str]:
        url = self.listings.get(channel)
        return url.strip() if url and url.strip() else None


class RateCompareConfig(BaseModel):
    """Configuration document consumed from the admin layer."""

    channels: Dict[Channel, ChannelAdapterConfig] = Field(default_factory=dict)
    properties: List[PropertyConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_properties(self) -> "RateCompareConfig":
        ids = [p.id for p in self.properties]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate property ids: {', '.join(duplicates)}")
        return self

    def channel_config(self, channel: Channel) -> ChannelAdapterConfig:
        """Return the configured policy for a channel, or the defaults."""
        return self.channels.get(channel) or ChannelAdapterConfig()

    def get_property(self, property_id: str) -> Optional[PropertyConfig]:
        for prop in self.properties:
            if prop.id == property_id:
                return prop
        return None


def load_rate_compare_config(path: Optional[str] = None) -> RateCompareConfig:
    """Load and validate the admin configuration document.

    Args:
        path: JSON file path; defaults to ``settings.PROPERTIES_FILE``.
              An empty path yields an empty configuration.

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    path = path if path is not None else settings.PROPERTIES_FILE
    if not path:
        return RateCompareConfig()

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

    try:
        return RateCompareConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e


settings = Settings()
