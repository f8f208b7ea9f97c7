"""Main entry point for the talentmatch batch service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

from talentmatch.batch import BatchOrchestrator, BatchScheduler, InMemoryProfileProvider, JobStatus
from talentmatch.batch.collaborators import InMemoryMatchStore
from talentmatch.batch.store import InMemoryJobStore
from talentmatch.config.environment import EnvironmentConfig
from talentmatch.config.exceptions import ConfigurationError
from talentmatch.config.loader import load_config
from talentmatch.config.models import AppConfig
from talentmatch.dataset import load_dataset
from talentmatch.logging import get_logger
from talentmatch.logging.config import configure_logging
from talentmatch.persistence.database import close_database, init_database
from talentmatch.scoring import MatchingAlgorithm, ScoringEngine, ScoringWeights

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_engine(app_config: AppConfig) -> ScoringEngine:
    return ScoringEngine(
        default_algorithm=MatchingAlgorithm(app_config.scoring.default_algorithm),
        default_weights=ScoringWeights(**app_config.scoring.weights),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="talentmatch - candidate/job scoring and batch matching service"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--dataset",
        type=Path,
        default=None,
        help="YAML/JSON file with 'candidates' and 'jobs' lists",
    )
    parser.add_argument(
        "--algorithm",
        default=None,
        choices=[algorithm.value for algorithm in MatchingAlgorithm],
        help="Scoring algorithm for the matching run (default: from config)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the scheduler until SIGINT/SIGTERM instead of a single matching run",
    )
    return parser


def main(argv=None) -> int:
    """
    Main entry point.

    Without --serve, scores every candidate of --dataset against every job as
    one large-scale matching job, logs a summary and exits.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.serve and args.dataset is None:
        parser.error("--dataset is required unless --serve is given")

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "talentmatch starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "serve": args.serve,
            },
        )

        persistence = app_config.scheduler.enable_persistence
        if persistence:
            init_database(env_config.database_url)
            from talentmatch.persistence.stores import SqlJobStore, SqlMatchStore

            job_store, match_store = SqlJobStore(), SqlMatchStore()
        else:
            job_store, match_store = InMemoryJobStore(), InMemoryMatchStore()

        profiles = InMemoryProfileProvider()
        if args.dataset is not None:
            candidates, jobs = load_dataset(args.dataset)
            for candidate in candidates:
                profiles.add_candidate(candidate)
            for job in jobs:
                profiles.add_job(job)
            logger.info(
                f"Dataset loaded: {len(candidates)} candidates, {len(jobs)} jobs",
                extra={
                    "event": "dataset.loaded",
                    "candidates": len(candidates),
                    "jobs": len(jobs),
                },
            )

        scheduler = BatchScheduler(config=app_config.scheduler, job_store=job_store)
        orchestrator = BatchOrchestrator(
            scheduler=scheduler,
            engine=build_engine(app_config),
            profile_provider=profiles,
            match_store=match_store,
            batch_config=app_config.batch,
        )

        if args.serve:
            exit_code = _serve(scheduler)
        else:
            exit_code = _run_matching(scheduler, orchestrator, args.algorithm)

        if persistence:
            close_database()

        logger.info(
            "talentmatch stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e.message}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


def _run_matching(
    scheduler: BatchScheduler, orchestrator: BatchOrchestrator, algorithm: Optional[str]
) -> int:
    scheduler.start()
    try:
        job_id = orchestrator.process_large_scale_matching(algorithm=algorithm, created_by="cli")
        job = scheduler.wait_for_job(job_id)
    finally:
        scheduler.shutdown(wait=True)

    results = job.results
    logger.info(
        f"Matching run {job.status.value}: "
        f"{results.processed} pairs scored, "
        f"{results.failed} failed, "
        f"{results.data.get('stored_matches', 0)} matches stored",
        extra={
            "event": "service.matching_run.completed",
            "batch_job_id": job.id,
            "status": job.status.value,
            "retry_count": job.metadata.retry_count,
            "duration_seconds": job.timing.actual_duration,
            "processed": results.processed,
            "failed": results.failed,
            "average_score": results.data.get("average_score"),
        },
    )
    return 0 if job.status == JobStatus.COMPLETED else 1


def _serve(scheduler: BatchScheduler) -> int:
    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    recovered = scheduler.recover_jobs()
    scheduler.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started", "recovered_jobs": recovered},
    )

    try:
        shutdown_event.wait()
    finally:
        scheduler.shutdown(wait=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
