import time

import psycopg

from docflow.config.settings import Settings
from docflow.database.connection import get_connection
from docflow.database.models import JobRecord
from docflow.database.repositories.chain_metadata_repository import ChainMetadataRepository
from docflow.database.repositories.job_repository import JobRepository
from docflow.logging.logger import Log
from docflow.worker.job_runner import JobRunner

METADATA_PURGE_INTERVAL_SECONDS = 300


class Worker:
    """Poll loop: claim a stage job and run it, or tidy up and sleep."""

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        metadata_repo: ChainMetadataRepository,
        settings: Settings,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._metadata_repo = metadata_repo
        self._settings = settings
        self._last_purge: float | None = None

    def run(self, max_jobs: int | None = None) -> None:
        """Process stage jobs until interrupted.

        With max_jobs set the loop returns once that many jobs have run, which
        lets tests and the CLI drain a known number of stages.
        """
        Log.info("Worker started, polling for stage jobs", ai_provider=self._settings.ai_provider)
        processed = 0
        try:
            while max_jobs is None or processed < max_jobs:
                job = self._try_claim_job()
                if job is None:
                    self._idle()
                    continue
                self._job_runner.run(job)
                processed += 1
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully", processed=processed)

    def _idle(self) -> None:
        self._purge_expired_metadata()
        Log.debug("No stage jobs available, sleeping")
        time.sleep(self._settings.job_poll_interval_seconds)

    def _purge_expired_metadata(self) -> None:
        now = time.monotonic()
        if self._last_purge is not None and now - self._last_purge < METADATA_PURGE_INTERVAL_SECONDS:
            return
        self._last_purge = now
        try:
            removed = self._metadata_repo.purge_expired()
        except psycopg.Error as exc:
            Log.warning(f"Chain metadata purge failed: {exc}")
            return
        if removed:
            Log.info("Purged expired chain metadata", removed=removed)

    def _try_claim_job(self) -> JobRecord | None:
        """Claim the next runnable job; database errors mean "try again later"."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except psycopg.Error as exc:
            Log.warning(f"Database error while claiming a job, will retry: {exc}")
            return None
