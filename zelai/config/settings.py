"""Client configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import AnyUrl, Field, NonNegativeInt, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

API_KEY_PREFIX = "zelai_pk_"

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("./config/zelai.yaml"),
    Path("./config/zelai.yml"),
)


class ClientSettings(BaseSettings):
    """Validated settings for the ZelAI WebSocket client."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="ZELAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection + identity
    api_key: str | None = Field(
        default=None,
        description="API key sent in the auth frame; must start with 'zelai_pk_'.",
        repr=False,
    )
    base_url: AnyUrl = Field(
        default="https://api.zelstudio.com:800",
        description="Service base URL; http(s) is mapped to ws(s) for the socket.",
    )
    ws_path: str = Field(
        default="/ws/generation",
        description="Path of the generation WebSocket endpoint.",
    )
    transport: Literal["dummy", "websocket"] = Field(
        default="websocket",
        description="Transport implementation to use.",
    )

    # Reconnection & keepalive
    auto_reconnect: bool = Field(
        default=True,
        description="Reconnect automatically after an abnormal close.",
    )
    reconnect_base_delay_ms: PositiveInt = Field(
        default=1000,
        description="Base delay (milliseconds) for reconnection backoff.",
    )
    reconnect_max_delay_ms: PositiveInt = Field(
        default=30000,
        description="Maximum delay (milliseconds) between reconnection attempts.",
    )
    reconnect_max_attempts: NonNegativeInt | None = Field(
        default=None,
        description="Give up after this many consecutive reconnect attempts (None retries forever).",
    )
    heartbeat_interval_ms: PositiveInt = Field(
        default=30000,
        description="Interval between transport pings while the session is ready.",
    )
    auth_timeout_ms: PositiveInt | None = Field(
        default=10000,
        description="Milliseconds to wait for auth_success after opening the socket.",
    )

    # Request timeouts
    request_timeout_ms: PositiveInt = Field(
        default=180000,
        description="Default timeout for generation requests.",
    )
    stream_timeout_ms: PositiveInt = Field(
        default=300000,
        description="Default timeout for streaming requests.",
    )
    query_timeout_ms: PositiveInt = Field(
        default=30000,
        description="Default timeout for settings/usage/rate-limit queries.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level used by the bundled scripts.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("api_key")
    @classmethod
    def _check_api_key(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(API_KEY_PREFIX):
            raise ValueError(f"Invalid API key format. Must start with {API_KEY_PREFIX!r}")
        return value

    @field_validator("ws_path")
    @classmethod
    def _normalize_ws_path(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @property
    def ws_url(self) -> str:
        """WebSocket URL derived from ``base_url`` and ``ws_path``."""

        base = str(self.base_url).rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return base + self.ws_path

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[ClientSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[ClientSettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = ClientSettings._resolve_candidate_paths()

        for path in candidates:
            data = ClientSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("ZELAI_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read client config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid client config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Client config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> ClientSettings:
    """Return memoized client settings."""

    return ClientSettings()
