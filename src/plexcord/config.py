from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .utils import env_float, load_yaml_file, validate_url

OVERFLOW_POLICIES = ("flush_oldest", "reject")

DEFAULT_CONFIG_PATH = Path("/config/plexcord.yaml")


@dataclass(frozen=True)
class WebhookEndpoint:
    """One Discord webhook destination."""

    name: str
    url: str
    username: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class RelaySettings:
    debounce_seconds: float = 5.0
    endpoints: tuple[WebhookEndpoint, ...] = ()
    queue_capacity: int = 1000
    max_pending_groups: int = 500
    overflow_policy: str = "flush_oldest"  # flush_oldest | reject
    max_age_seconds: float | None = None
    delivery_timeout: float = 10.0
    max_workers: int = 8
    events: tuple[str, ...] = ("library.new",)


@dataclass(frozen=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 8000
    max_request_bytes: int = 1024 * 1024
    log_dir: Path | None = None


@dataclass(frozen=True)
class AppConfig:
    relay: RelaySettings = field(default_factory=RelaySettings)
    server: ServerSettings = field(default_factory=ServerSettings)


def default_config_path() -> Path:
    raw = os.getenv("PLEXCORD_CONFIG")
    if raw and raw.strip():
        return Path(raw.strip()).expanduser()
    return DEFAULT_CONFIG_PATH


def _ensure_string_list(value: Any, *, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be provided as a list of strings")
    result: list[str] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, str):
            raise ValueError(f"'{field_name}[{index}]' must be a string")
        cleaned = entry.strip()
        if cleaned:
            result.append(cleaned)
    return result


def _as_float(value: Any, *, field_name: str, minimum: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:  # noqa: PERF203
        raise ValueError(f"'{field_name}' must be a number") from exc
    if number < minimum:
        raise ValueError(f"'{field_name}' must be greater than or equal to {minimum:g}")
    return number


def _as_int(value: Any, *, field_name: str, minimum: int = 1) -> int:
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:  # noqa: PERF203
        raise ValueError(f"'{field_name}' must be an integer") from exc
    if number < minimum:
        raise ValueError(f"'{field_name}' must be greater than or equal to {minimum}")
    return number


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _build_endpoint(data: Any, index: int) -> WebhookEndpoint:
    prefix = f"endpoints[{index}]"
    if isinstance(data, str):
        data = {"url": data}
    if not isinstance(data, dict):
        raise ValueError(f"'{prefix}' must be a mapping or a URL string")

    url = _clean_str(data.get("url"))
    if url is None:
        env_name = _clean_str(data.get("url_env"))
        if env_name is None:
            raise ValueError(f"'{prefix}' must define 'url' or 'url_env'")
        url = _clean_str(os.environ.get(env_name))
        if url is None:
            raise ValueError(f"'{prefix}.url_env' refers to unset environment variable '{env_name}'")

    if not validate_url(url):
        raise ValueError(f"'{prefix}.url' must be a valid http/https URL")

    avatar_url = _clean_str(data.get("avatar_url"))
    if avatar_url and not validate_url(avatar_url):
        raise ValueError(f"'{prefix}.avatar_url' must be a valid http/https URL")

    return WebhookEndpoint(
        name=_clean_str(data.get("name")) or f"endpoint-{index + 1}",
        url=url,
        username=_clean_str(data.get("username")),
        avatar_url=avatar_url,
    )


def _build_endpoints(data: Any) -> tuple[WebhookEndpoint, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ValueError("'endpoints' must be provided as a list when specified")

    endpoints: list[WebhookEndpoint] = []
    seen: set[str] = set()
    for index, entry in enumerate(data):
        endpoint = _build_endpoint(entry, index)
        if endpoint.name in seen:
            raise ValueError(f"'endpoints[{index}].name' duplicates endpoint '{endpoint.name}'")
        seen.add(endpoint.name)
        endpoints.append(endpoint)
    return tuple(endpoints)


def _build_relay_settings(data: Any, endpoints: tuple[WebhookEndpoint, ...]) -> RelaySettings:
    if not data:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("'relay' must be provided as a mapping when specified")

    debounce = _as_float(data.get("debounce_seconds", 5.0), field_name="relay.debounce_seconds")
    env_debounce = env_float("PLEXCORD_DEBOUNCE_SECONDS")
    if env_debounce is not None:
        debounce = _as_float(env_debounce, field_name="PLEXCORD_DEBOUNCE_SECONDS")

    overflow_policy = str(data.get("overflow_policy", "flush_oldest")).strip().lower()
    if overflow_policy not in OVERFLOW_POLICIES:
        raise ValueError(
            f"'relay.overflow_policy' must be one of {', '.join(OVERFLOW_POLICIES)}, got '{overflow_policy}'"
        )

    max_age_raw = data.get("max_age_seconds")
    max_age: float | None = None
    if max_age_raw is not None:
        max_age = _as_float(max_age_raw, field_name="relay.max_age_seconds")
        if max_age < debounce:
            raise ValueError("'relay.max_age_seconds' must not be shorter than 'relay.debounce_seconds'")

    events = _ensure_string_list(data.get("events", ["library.new"]), field_name="relay.events")
    if not events:
        raise ValueError("'relay.events' must list at least one Plex event name")

    return RelaySettings(
        debounce_seconds=debounce,
        endpoints=endpoints,
        queue_capacity=_as_int(data.get("queue_capacity", 1000), field_name="relay.queue_capacity"),
        max_pending_groups=_as_int(data.get("max_pending_groups", 500), field_name="relay.max_pending_groups"),
        overflow_policy=overflow_policy,
        max_age_seconds=max_age,
        delivery_timeout=_as_float(data.get("delivery_timeout", 10.0), field_name="relay.delivery_timeout"),
        max_workers=_as_int(data.get("max_workers", 8), field_name="relay.max_workers"),
        events=tuple(events),
    )


def _build_server_settings(data: Any) -> ServerSettings:
    if not data:
        return ServerSettings()
    if not isinstance(data, dict):
        raise ValueError("'server' must be provided as a mapping when specified")

    port = _as_int(data.get("port", 8000), field_name="server.port")
    if port > 65535:
        raise ValueError("'server.port' must be less than or equal to 65535")

    log_dir_raw = _clean_str(data.get("log_dir"))
    return ServerSettings(
        host=_clean_str(data.get("host")) or "127.0.0.1",
        port=port,
        max_request_bytes=_as_int(
            data.get("max_request_bytes", 1024 * 1024),
            field_name="server.max_request_bytes",
        ),
        log_dir=Path(log_dir_raw).expanduser() if log_dir_raw else None,
    )


def build_config(data: dict[str, Any]) -> AppConfig:
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping")
    endpoints = _build_endpoints(data.get("endpoints"))
    return AppConfig(
        relay=_build_relay_settings(data.get("relay"), endpoints),
        server=_build_server_settings(data.get("server")),
    )


def load_config(path: Path) -> AppConfig:
    return build_config(load_yaml_file(path))
