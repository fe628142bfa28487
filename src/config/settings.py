"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from TWO sources (in priority
# order):
#
#   1. **Environment variables** - e.g., SPOTIFY_ACCESS_TOKEN=BQD...
#      (highest priority - always wins)
#   2. **.env file** - key=value lines in the project root .env file
#
# Field name `recency_window_days` maps to env var `RECENCY_WINDOW_DAYS`.
# Defaults apply when neither an env var nor a .env entry exists.
#
# The access token comes from an external OAuth flow; this project never
# acquires or refreshes tokens itself.  Keep .env out of version control.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Spotify caps every paginated endpoint used here at 50 items per page.
_MAX_PAGE_SIZE = 50


class Settings(BaseSettings):
    """Release Radar settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Catalog service ===
    # Empty string = "not configured" → the CLI refuses to start.
    spotify_access_token: str = ""
    spotify_api_base_url: str = "https://api.spotify.com/v1"
    spotify_market: str = "from_token"
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    # Minimum spacing between any two gateway requests; 0 disables it.
    min_request_interval: float = Field(default=0.0, ge=0)

    # === Release window / strategy ===
    recency_window_days: int = Field(default=10, ge=0)
    # Search-based retrieval is off by default: the upstream search
    # endpoint's "tag:new" filter is unreliable.
    use_search_optimization: bool = False
    verify_release_ordering: bool = False

    # === Batching ===
    batch_size: int = Field(default=10, ge=1)
    concurrency_within_batch: int = Field(default=1, ge=1)
    artist_delay_ms: int = Field(default=100, ge=0)
    inter_batch_delay_ms: int = Field(default=200, ge=0)

    # === Page sizes ===
    release_page_size: int = Field(default=20, ge=1, le=_MAX_PAGE_SIZE)
    search_limit: int = Field(default=20, ge=1, le=_MAX_PAGE_SIZE)
    source_page_size: int = Field(default=50, ge=1, le=_MAX_PAGE_SIZE)
    source_page_delay_ms: int = Field(default=100, ge=0)

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def has_credentials(self) -> bool:
        """Return ``True`` when an access token is configured."""
        return bool(self.spotify_access_token.strip())
