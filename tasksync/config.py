from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field


DEFAULT_SETTINGS_PATH = os.environ.get("TASKSYNC_SETTINGS", "/data/settings.yml")


class AppSettings(BaseModel):
    name: str = "TaskSync"
    host: str = "0.0.0.0"  # nosec B104
    port: int = 5000
    # Browser origins allowed to call the API with credentials.
    client_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])


class SecuritySettings(BaseModel):
    jwt_secret: str = "CHANGE_ME_JWT_SECRET"
    # Seven days, matching the auth cookie max-age.
    jwt_expire_minutes: int = 60 * 24 * 7
    cookie_name: str = "token"
    cookie_secure: bool = False


class DatabaseSettings(BaseModel):
    path: str = "/data/tasksync.db"


class RealtimeSettings(BaseModel):
    # Per-session queue depth; a session that falls this far behind is dropped.
    queue_size: int = 100
    heartbeat_seconds: float = 15.0
    max_sessions: int = 500


class TaskSettings(BaseModel):
    # Serialize read-before/write/detect per task id inside this process.
    serialize_updates: bool = True


class LoggingSettings(BaseModel):
    level: str = "INFO"
    directory: str = "/data/logs"
    retention_days: int = 14


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    tasks: TaskSettings = Field(default_factory=TaskSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _ensure_settings_file(path: str) -> None:
    p = Path(path)
    if p.exists():
        return

    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(
        "app:\n  name: 'TaskSync'\n  host: '0.0.0.0'\n  port: 5000\n"
        "  client_origins:\n    - 'http://localhost:5173'\n"
        "security:\n  jwt_secret: 'CHANGE_ME_JWT_SECRET'\n  jwt_expire_minutes: 10080\n"
        "database:\n  path: '/data/tasksync.db'\n"
        "realtime:\n  queue_size: 100\n  heartbeat_seconds: 15\n  max_sessions: 500\n"
        "tasks:\n  serialize_updates: true\n"
        "logging:\n  level: 'INFO'\n  directory: '/data/logs'\n  retention_days: 14\n"
    )


def _load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("settings.yml must contain a YAML mapping at the root")
    return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings_path = os.environ.get("TASKSYNC_SETTINGS", DEFAULT_SETTINGS_PATH)
    _ensure_settings_file(settings_path)
    raw = _load_yaml(settings_path)
    s = Settings.model_validate(raw)

    jwt_secret = os.environ.get("TASKSYNC_JWT_SECRET")
    if jwt_secret:
        s.security.jwt_secret = jwt_secret

    origins_env = os.environ.get("TASKSYNC_CLIENT_ORIGINS")
    if origins_env:
        s.app.client_origins = [o.strip() for o in origins_env.split(",") if o.strip()]

    port_env = os.environ.get("PORT") or os.environ.get("TASKSYNC_PORT")
    if port_env:
        try:
            s.app.port = int(port_env)
        except ValueError:
            pass

    return s
