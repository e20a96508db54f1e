from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field

from tsi_rebuild.config import RESERVED_DATABASE, RETENTION_POLICY_DIR, RunConfig

logger = logging.getLogger(__name__)

_SHARD_ID_PATTERN = re.compile(r"[+-]?[0-9]+")


class DiscoveryError(RuntimeError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot read {path}: {reason}")
        self.path = path


@dataclass
class Database:
    name: str
    shards: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class JobDescriptor:
    database: str
    shard: int


def parse_shard_id(text: str) -> int:
    """Parse a shard directory name or filter entry.

    Names that are not base-10 integers become shard 0 instead of aborting
    discovery, so a stray directory under autogen schedules a job for shard 0.
    """
    if _SHARD_ID_PATTERN.fullmatch(text):
        return int(text)
    logger.warning("shard id %r is not an integer, using 0", text)
    return 0


def _list_dir(path: str) -> list[os.DirEntry]:
    try:
        with os.scandir(path) as it:
            entries = list(it)
    except OSError as exc:
        raise DiscoveryError(path, exc.strerror or str(exc)) from exc
    return sorted(entries, key=lambda e: e.name)


def _subdirectories(path: str) -> list[str]:
    return [e.name for e in _list_dir(path) if e.is_dir(follow_symlinks=False)]


def discover_databases(config: RunConfig) -> list[Database]:
    names = _subdirectories(config.data_dir)
    if config.database:
        databases = [Database(name=config.database)]
    else:
        databases = [Database(name=n) for n in names if n != RESERVED_DATABASE]

    shard_filter = None
    if config.shards is not None:
        shard_filter = [parse_shard_id(s) for s in config.shards]

    for db in databases:
        shard_dirs = _subdirectories(os.path.join(config.data_dir, db.name, RETENTION_POLICY_DIR))
        if shard_filter is None:
            db.shards = [parse_shard_id(name) for name in shard_dirs]
        else:
            db.shards = list(shard_filter)
        logger.debug("database %s: shards=%s", db.name, db.shards)

    return databases


def build_jobs(databases: list[Database]) -> list[JobDescriptor]:
    return [JobDescriptor(database=db.name, shard=shard) for db in databases for shard in db.shards]
