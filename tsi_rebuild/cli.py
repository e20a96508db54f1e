from __future__ import annotations

import argparse
import logging
import os
import sys

from pydantic import BaseModel, Field, ValidationError, field_validator

from tsi_rebuild.config import RunConfig, get_defaults
from tsi_rebuild.discovery import DiscoveryError
from tsi_rebuild.executor import JobError
from tsi_rebuild.service import rebuild_all

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


class RunOptions(BaseModel):
    datadir: str = Field(min_length=1)
    waldir: str = Field(min_length=1)
    max_log_file_size: int = Field(gt=0)
    concurrency: int = Field(gt=0)
    verbose: bool = False
    database: str | None = None
    shards: str | None = None
    inspect_command: str = Field(min_length=1)

    @field_validator("database", "shards")
    @classmethod
    def _empty_means_unset(cls, value: str | None) -> str | None:
        return value or None

    def to_config(self) -> RunConfig:
        return RunConfig(
            data_dir=self.datadir,
            wal_dir=self.waldir,
            max_log_file_size=self.max_log_file_size,
            concurrency=self.concurrency,
            verbose=self.verbose,
            database=self.database,
            shards=tuple(self.shards.split(",")) if self.shards else None,
            inspect_command=self.inspect_command,
        )


_TRUE_VALUES = {"1", "t", "true", "yes", "on"}
_FALSE_VALUES = {"0", "f", "false", "no", "off"}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value: {raw!r}")


def build_parser(defaults: RunConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tsi-rebuild",
        description="Rebuild TSI indexes for every database/shard with influx_inspect buildtsi",
        allow_abbrev=False,
    )
    parser.add_argument("-datadir", "--datadir", default=defaults.data_dir, help="datadir location")
    parser.add_argument("-waldir", "--waldir", default=defaults.wal_dir, help="waldir location")
    parser.add_argument(
        "-max-log-file-size",
        "--max-log-file-size",
        dest="max_log_file_size",
        type=int,
        default=defaults.max_log_file_size,
        help="max-log-file-size",
    )
    parser.add_argument("-concurrency", "--concurrency", type=int, default=defaults.concurrency, help="concurrency")
    parser.add_argument(
        "-verbose",
        "--verbose",
        nargs="?",
        const=True,
        type=_parse_bool,
        default=defaults.verbose,
        help="enable verbose mode that prints out stdout from [influx_inspect] (-verbose=false to disable)",
    )
    parser.add_argument("-database", "--database", default="", help="run on a specific database (optional)")
    parser.add_argument("-shards", "--shards", default="", help="run on a specific set of shards (optional)")
    parser.add_argument("-version", "--version", action="version", version=__version__, help="prints current version")
    return parser


def _abort(code: int) -> None:
    # Exit without joining worker threads; running buildtsi processes are left alone.
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(code)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")

    defaults = get_defaults()
    args = build_parser(defaults).parse_args(argv)
    try:
        options = RunOptions(
            datadir=args.datadir,
            waldir=args.waldir,
            max_log_file_size=args.max_log_file_size,
            concurrency=args.concurrency,
            verbose=args.verbose,
            database=args.database,
            shards=args.shards,
            inspect_command=defaults.inspect_command,
        )
    except ValidationError as exc:
        print(f"tsi-rebuild: invalid options\n{exc}", file=sys.stderr)
        return 2

    try:
        summary = rebuild_all(options.to_config())
    except DiscoveryError as exc:
        logger.error("discovery failed: %s", exc)
        _abort(1)
        return 1
    except JobError as exc:
        logger.error("%s", exc)
        if exc.output:
            logger.error("output of %s/%d:\n%s", exc.job.database, exc.job.shard, exc.output)
        _abort(1)
        return 1
    except Exception:
        logger.exception("run aborted")
        _abort(1)
        return 1

    logger.info("rebuilt %d shard(s) across %d database(s)", len(summary.results), len(summary.databases))
    return 0
