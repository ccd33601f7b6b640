"""Global configuration for Tify Events.

Every key in ``DEFAULTS`` can be overridden in ``tify.toml`` and then by a
``TIFY_<KEY>`` environment variable. Values are coerced to the type of their
default.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULTS: dict[str, Any] = {
    "database_url": "",
    "transaction_max_wait_seconds": 5.0,
    "transaction_timeout_seconds": 20.0,
    "sqlite_vacuum_hours": 12,
    "enable_scheduler": True,
    "email_sender": "Tify Events <no-reply@tify.com>",
    "seed_events": 1,
    "seed_zones": 2,
    "seed_rows": 5,
    "seed_cols": 8,
    "seed_general_capacity": 100,
    "app_host": "0.0.0.0",
    "app_port": 8000,
}

# key -> (minimum, inclusive)
LOWER_BOUNDS: dict[str, tuple[float, bool]] = {
    "transaction_max_wait_seconds": (0, False),
    "transaction_timeout_seconds": (0, False),
    "sqlite_vacuum_hours": (1, True),
    "seed_events": (0, True),
    "seed_zones": (0, True),
    "seed_rows": (1, True),
    "seed_cols": (1, True),
    "seed_general_capacity": (0, True),
    "app_port": (1, True),
}

ROOT_TOKEN_KEY = "root_admin_token"


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    database_url: str
    transaction_max_wait_seconds: float
    transaction_timeout_seconds: float
    sqlite_vacuum_hours: int
    enable_scheduler: bool
    email_sender: str
    seed_events: int
    seed_zones: int
    seed_rows: int
    seed_cols: int
    seed_general_capacity: int
    app_host: str
    app_port: int
    config_path: Path
    root_token_key: str = ROOT_TOKEN_KEY

    @property
    def resolved_database_url(self) -> str:
        """Return the configured URL, defaulting to the SQLite file in data_dir."""
        return self.database_url or f"sqlite:///{self.database_path}"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    lowered = str(value).strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def coerce(key: str, value: Any) -> Any:
    """Convert ``value`` to the type of ``DEFAULTS[key]`` and check its bounds."""
    default = DEFAULTS[key]
    if isinstance(default, bool):
        result: Any = _parse_bool(value)
    elif isinstance(default, int):
        result = int(value)
    elif isinstance(default, float):
        result = float(value)
    else:
        result = str(value)

    if key in LOWER_BOUNDS:
        minimum, inclusive = LOWER_BOUNDS[key]
        if result < minimum or (not inclusive and result == minimum):
            relation = ">=" if inclusive else ">"
            raise ValueError(f"{key} must be {relation} {minimum} (got {result!r})")
    return result


def _read_toml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _layered_value(key: str, toml_config: dict[str, Any]) -> Any:
    env_value = os.environ.get(f"TIFY_{key.upper()}")
    if env_value is not None:
        return coerce(key, env_value)
    if key in toml_config:
        return coerce(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_path(raw: str | Path | None, *, base: Path, fallback: Path) -> Path:
    path = Path(raw) if raw else fallback
    return path if path.is_absolute() else base / path


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("TIFY_BASE_DIR", Path.cwd()))
    config_path = Path(
        config_override or os.getenv("TIFY_CONFIG") or base_dir / "tify.toml"
    )
    toml_config = _read_toml(config_path)

    data_dir = _resolve_path(
        os.getenv("TIFY_DATA_DIR", toml_config.get("data_dir")),
        base=base_dir,
        fallback=base_dir / "data",
    )
    database_path = _resolve_path(
        os.getenv("TIFY_DB", toml_config.get("database_path")),
        base=base_dir,
        fallback=data_dir / "tify.db",
    )

    settings = Settings(
        base_dir=base_dir,
        data_dir=data_dir,
        database_path=database_path,
        config_path=config_path,
        **{key: _layered_value(key, toml_config) for key in DEFAULTS},
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
    }
    payload.update({key: getattr(settings, key) for key in DEFAULTS})
    return payload


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    body = "".join(f"{key} = {_toml_literal(config[key])}\n" for key in sorted(config))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("# Tify Events configuration\n" + body, encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    """Merge known keys into the TOML file and reload the global settings."""
    global settings
    target_path = path or settings.config_path
    merged = _read_toml(target_path)
    merged.update(
        {key: coerce(key, value) for key, value in updates.items() if key in DEFAULTS}
    )
    write_config_file(merged, path=target_path)
    settings = load_settings(target_path)
    return settings


settings = load_settings()
