"""Where engagesync keeps its database and the engagement-state mirror."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "engagesync"
DEFAULT_DB_FILENAME: Final[str] = "engagesync.db"
STATE_MIRROR_FILENAME: Final[str] = "engagement_states.jsonl"
MIRROR_DISABLED_VALUES: Final[frozenset[str]] = frozenset({"off", "none", "false", "0"})


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME
    state_mirror_override: Path | None = None
    state_mirror_enabled: bool = True

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def _in_data_dir(self, filename: str, *, ensure: bool) -> Path:
        data_dir = self.resolve_data_dir()
        if ensure:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / filename

    def database_path(self, *, ensure: bool = True) -> Path:
        return self._in_data_dir(self.database_filename, ensure=ensure)

    def state_mirror_path(self, *, ensure: bool = True) -> Path | None:
        """Target of the JSON lines mirror, or None when the mirror is switched off."""

        if not self.state_mirror_enabled:
            return None
        if self.state_mirror_override is not None:
            return self.state_mirror_override.expanduser().resolve()
        return self._in_data_dir(STATE_MIRROR_FILENAME, ensure=ensure)

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _default_data_dir() -> Path:
    base = os.getenv("XDG_DATA_HOME")
    base_path = Path(base) if base else Path.home() / ".local" / "share"
    return base_path / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    """Read ``ENGAGESYNC_DATA_DIR`` and ``ENGAGESYNC_STATE_MIRROR`` (a path, or "off")."""

    env_dir = os.getenv("ENGAGESYNC_DATA_DIR")
    mirror = (os.getenv("ENGAGESYNC_STATE_MIRROR") or "").strip()
    mirror_enabled = mirror.lower() not in MIRROR_DISABLED_VALUES
    return StorageConfig(
        data_dir=Path(env_dir) if env_dir else _default_data_dir(),
        state_mirror_override=Path(mirror) if mirror and mirror_enabled else None,
        state_mirror_enabled=mirror_enabled,
    )


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    env_uri = os.getenv("DATABASE_URI")
    if env_uri:
        return DatabaseConfig(uri=env_uri)
    return DatabaseConfig(uri=(storage or get_storage_config()).database_uri())
