from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from tsi_rebuild.config import RunConfig
from tsi_rebuild.discovery import JobDescriptor

logger = logging.getLogger(__name__)

# Answer for the confirmation prompt printed by `influx_inspect buildtsi`.
CONFIRM_INPUT = "y"


class JobError(RuntimeError):
    def __init__(self, message: str, job: JobDescriptor, command: list[str], output: str = "") -> None:
        super().__init__(message)
        self.job = job
        self.command = command
        self.output = output


class JobLaunchError(JobError):
    pass


class JobExecutionError(JobError):
    def __init__(self, job: JobDescriptor, command: list[str], returncode: int, output: str) -> None:
        super().__init__(
            f"buildtsi_failed: {' '.join(command)} exited with status {returncode}",
            job,
            command,
            output,
        )
        self.returncode = returncode


@dataclass
class JobResult:
    job: JobDescriptor
    command: list[str]
    returncode: int
    output: str


def build_command(job: JobDescriptor, config: RunConfig) -> list[str]:
    return [
        config.inspect_command,
        "buildtsi",
        "-datadir",
        config.data_dir,
        "-waldir",
        config.wal_dir,
        "-max-log-file-size",
        str(config.max_log_file_size),
        "-database",
        job.database,
        "-shard",
        str(job.shard),
    ]


def run_job(job: JobDescriptor, config: RunConfig) -> JobResult:
    """Run `buildtsi` for one database/shard and return its combined output.

    Raises JobLaunchError when the command cannot be started and
    JobExecutionError when it exits non-zero. The captured output is kept on
    the exception so callers can report it even when verbose is off.
    """
    logger.info("Processing (%s) on shard (%d)", job.database, job.shard)
    cmd = build_command(job, config)

    try:
        proc = subprocess.run(
            cmd,
            input=CONFIRM_INPUT,
            text=True,
            errors="replace",
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as exc:
        raise JobLaunchError(f"buildtsi_launch_failed: {exc}", job, cmd) from exc

    output = proc.stdout or ""
    if proc.returncode != 0:
        raise JobExecutionError(job, cmd, proc.returncode, output)

    if config.verbose:
        print(output)
    return JobResult(job=job, command=cmd, returncode=proc.returncode, output=output)
