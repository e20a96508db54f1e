from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

RESERVED_DATABASE = "_internal"
RETENTION_POLICY_DIR = "autogen"


@dataclass(frozen=True)
class RunConfig:
    data_dir: str = "/var/lib/influxdb/data"
    wal_dir: str = "/var/lib/influxdb/wal"
    max_log_file_size: int = 131072
    concurrency: int = 1
    verbose: bool = False
    database: str | None = None
    shards: tuple[str, ...] | None = None
    inspect_command: str = "influx_inspect"


def _load_dotenv(path: Path) -> None:
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue

        key, value = raw.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


def _get_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _get_flag(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


def default_concurrency() -> int:
    return os.cpu_count() or 1


@lru_cache(maxsize=1)
def get_defaults() -> RunConfig:
    """Defaults for every flag, read once from the environment and `.env`."""
    _load_dotenv(Path(".env"))

    return RunConfig(
        data_dir=os.getenv("TSI_REBUILD_DATADIR", "/var/lib/influxdb/data"),
        wal_dir=os.getenv("TSI_REBUILD_WALDIR", "/var/lib/influxdb/wal"),
        max_log_file_size=_get_int("TSI_REBUILD_MAX_LOG_FILE_SIZE", 131072),
        concurrency=_get_int("TSI_REBUILD_CONCURRENCY", default_concurrency()),
        verbose=_get_flag("TSI_REBUILD_VERBOSE"),
        inspect_command=os.getenv("TSI_REBUILD_INSPECT_COMMAND", "influx_inspect"),
    )
