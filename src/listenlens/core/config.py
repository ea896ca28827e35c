"""
Configuration management for ListenLens
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class SpotifyConfig:
    """Configuration for the catalog API and the token server."""

    auth_server_url: str = "http://localhost:8888/api"
    api_base_url: str = "https://api.spotify.com/v1"
    market: Optional[str] = None  # ISO 3166-1 alpha-2, e.g. "US"
    request_timeout: float = 30.0


@dataclass
class AuthConfig:
    """Configuration for credential lifecycle."""

    safety_margin_minutes: int = 5  # Refresh window before expiry
    refresh_interval_seconds: int = 300  # Background refresh check


@dataclass
class CacheConfig:
    """Configuration for the persistent response cache."""

    enabled: bool = True
    backend: str = "sqlite"  # 'sqlite' or 'memory'
    namespace: str = "spotify_cache_"
    stale_horizon_hours: int = 24  # clear_old() sweep horizon
    top_items_ttl_seconds: int = 600
    recently_played_ttl_seconds: int = 120
    saved_library_ttl_seconds: int = 3600
    quota_bytes: int = 0  # 0 = unbounded

    def validate(self) -> None:
        """Validate cache configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        valid_backends = {"sqlite", "memory"}
        if self.backend not in valid_backends:
            raise ValueError(
                f"Invalid cache backend: {self.backend!r}. "
                f"Valid backends are: {valid_backends}"
            )
        if self.quota_bytes < 0:
            raise ValueError("quota_bytes must be >= 0")


@dataclass
class FetchConfig:
    """Configuration for paginated fetching and hard caps."""

    page_size: int = 50
    request_delay_ms: int = 100
    max_ids_per_batch: int = 50
    track_hard_cap: int = 500
    artist_hard_cap: int = 500
    genre_limit: int = 100
    library_hard_cap: int = 0  # 0 = drain until a short page

    def validate(self) -> None:
        """Validate fetch configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not 1 <= self.page_size <= 50:
            raise ValueError(f"page_size must be between 1 and 50, got {self.page_size}")
        if not 1 <= self.max_ids_per_batch <= 50:
            raise ValueError(
                f"max_ids_per_batch must be between 1 and 50, got {self.max_ids_per_batch}"
            )
        if self.request_delay_ms < 0:
            raise ValueError("request_delay_ms must be >= 0")


@dataclass
class PollingConfig:
    """Configuration for background polling of recently played tracks."""

    enabled: bool = True
    recently_played_interval_seconds: int = 300


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/listenlens/listenlens.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of backup files to keep


@dataclass
class Config:
    """Main configuration object."""

    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "listenlens"
    return Path.home() / ".config" / "listenlens"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in project root by looking for pyproject.toml.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            if config_path.exists():
                return config_path
            return None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/listenlens (or ~/.config/listenlens)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "listenlens"
    return Path.home() / ".local" / "share" / "listenlens"


def _parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML, keeping defaults for missing keys."""
    config = Config()

    if "spotify" in toml_data:
        spotify_data = toml_data["spotify"]
        config.spotify = SpotifyConfig(
            auth_server_url=spotify_data.get(
                "auth_server_url", config.spotify.auth_server_url
            ),
            api_base_url=spotify_data.get("api_base_url", config.spotify.api_base_url),
            market=spotify_data.get("market", config.spotify.market),
            request_timeout=float(
                spotify_data.get("request_timeout", config.spotify.request_timeout)
            ),
        )

    if "auth" in toml_data:
        auth_data = toml_data["auth"]
        config.auth = AuthConfig(
            safety_margin_minutes=auth_data.get(
                "safety_margin_minutes", config.auth.safety_margin_minutes
            ),
            refresh_interval_seconds=auth_data.get(
                "refresh_interval_seconds", config.auth.refresh_interval_seconds
            ),
        )

    if "cache" in toml_data:
        cache_data = toml_data["cache"]
        config.cache = CacheConfig(
            enabled=cache_data.get("enabled", config.cache.enabled),
            backend=cache_data.get("backend", config.cache.backend),
            namespace=cache_data.get("namespace", config.cache.namespace),
            stale_horizon_hours=cache_data.get(
                "stale_horizon_hours", config.cache.stale_horizon_hours
            ),
            top_items_ttl_seconds=cache_data.get(
                "top_items_ttl_seconds", config.cache.top_items_ttl_seconds
            ),
            recently_played_ttl_seconds=cache_data.get(
                "recently_played_ttl_seconds", config.cache.recently_played_ttl_seconds
            ),
            saved_library_ttl_seconds=cache_data.get(
                "saved_library_ttl_seconds", config.cache.saved_library_ttl_seconds
            ),
            quota_bytes=cache_data.get("quota_bytes", config.cache.quota_bytes),
        )
        try:
            config.cache.validate()
        except ValueError as e:
            print(f"Warning: Invalid cache configuration: {e}")
            print("Using default cache configuration.")
            config.cache = CacheConfig()

    if "fetch" in toml_data:
        fetch_data = toml_data["fetch"]
        config.fetch = FetchConfig(
            page_size=fetch_data.get("page_size", config.fetch.page_size),
            request_delay_ms=fetch_data.get(
                "request_delay_ms", config.fetch.request_delay_ms
            ),
            max_ids_per_batch=fetch_data.get(
                "max_ids_per_batch", config.fetch.max_ids_per_batch
            ),
            track_hard_cap=fetch_data.get("track_hard_cap", config.fetch.track_hard_cap),
            artist_hard_cap=fetch_data.get(
                "artist_hard_cap", config.fetch.artist_hard_cap
            ),
            genre_limit=fetch_data.get("genre_limit", config.fetch.genre_limit),
            library_hard_cap=fetch_data.get(
                "library_hard_cap", config.fetch.library_hard_cap
            ),
        )
        try:
            config.fetch.validate()
        except ValueError as e:
            print(f"Warning: Invalid fetch configuration: {e}")
            print("Using default fetch configuration.")
            config.fetch = FetchConfig()

    if "polling" in toml_data:
        polling_data = toml_data["polling"]
        config.polling = PollingConfig(
            enabled=polling_data.get("enabled", config.polling.enabled),
            recently_played_interval_seconds=polling_data.get(
                "recently_played_interval_seconds",
                config.polling.recently_played_interval_seconds,
            ),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get("backup_count", config.logging.backup_count),
        )

    return config


def _apply_env_overrides(config: Config) -> Config:
    """Override TOML values with environment variables when present."""
    auth_server_url = os.environ.get("LISTENLENS_AUTH_SERVER_URL")
    api_base_url = os.environ.get("LISTENLENS_API_BASE_URL")
    market = os.environ.get("LISTENLENS_MARKET")

    if auth_server_url:
        config.spotify.auth_server_url = auth_server_url
    if api_base_url:
        config.spotify.api_base_url = api_base_url
    if market:
        config.spotify.market = market

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file, falling back to defaults.

    Environment variables override TOML values:
    - LISTENLENS_AUTH_SERVER_URL
    - LISTENLENS_API_BASE_URL
    - LISTENLENS_MARKET
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        return _apply_env_overrides(Config())

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
        config = _parse_config(toml_data)
    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"Error loading configuration from {config_path}: {e}")
        print("Using default configuration.")
        config = Config()

    return _apply_env_overrides(config)


def ensure_directories() -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
