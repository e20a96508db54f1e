from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial

from tsi_rebuild.config import RunConfig
from tsi_rebuild.discovery import Database, JobDescriptor, build_jobs, discover_databases
from tsi_rebuild.executor import JobResult, run_job
from tsi_rebuild.job_runner import JobRunner

logger = logging.getLogger(__name__)

PHASE_INIT = "init"
PHASE_DISCOVER = "discover"
PHASE_DISPATCH = "dispatch"
PHASE_DRAINING = "draining"
PHASE_DONE = "done"
PHASE_FATAL_ABORT = "fatal_abort"


@dataclass
class RunSummary:
    databases: list[Database]
    jobs: list[JobDescriptor]
    results: list[JobResult] = field(default_factory=list)


def discover_jobs(config: RunConfig) -> tuple[list[Database], list[JobDescriptor]]:
    databases = discover_databases(config)
    return databases, build_jobs(databases)


def rebuild_all(config: RunConfig, runner: JobRunner | None = None) -> RunSummary:
    phase = PHASE_INIT
    logger.info(
        "phase=%s datadir=%s waldir=%s concurrency=%d", phase, config.data_dir, config.wal_dir, config.concurrency
    )
    try:
        phase = PHASE_DISCOVER
        databases, jobs = discover_jobs(config)
        logger.info("phase=%s databases=%d jobs=%d", phase, len(databases), len(jobs))

        if runner is None:
            runner = JobRunner(config.concurrency, partial(run_job, config=config))
        phase = PHASE_DISPATCH
        logger.info("phase=%s slots=%d", phase, runner.concurrency)
        results = runner.run(jobs)
        phase = PHASE_DRAINING
        logger.info("phase=%s completed=%d", phase, len(results))
    except Exception as exc:
        logger.error("phase=%s -> %s: %s", phase, PHASE_FATAL_ABORT, exc)
        raise

    logger.info("phase=%s jobs=%d", PHASE_DONE, len(results))
    return RunSummary(databases=databases, jobs=jobs, results=results)
