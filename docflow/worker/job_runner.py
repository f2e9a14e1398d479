from docflow.config.settings import Settings
from docflow.database.models import JobRecord
from docflow.database.repositories.job_repository import JobRepository
from docflow.logging.logger import Log
from docflow.pipeline.exceptions import StageTimeoutError
from docflow.pipeline.failures import classify_failure
from docflow.pipeline.orchestrator import ChainOrchestrator


class JobRunner:
    """Run one stage job, catch exceptions, and apply retry logic."""

    def __init__(
        self,
        orchestrator: ChainOrchestrator,
        job_repo: JobRepository,
        settings: Settings,
    ) -> None:
        self._orchestrator = orchestrator
        self._job_repo = job_repo
        self._settings = settings

    def run(self, job: JobRecord) -> None:
        """Execute a single job with error handling."""
        if job.attempts >= self._settings.max_stage_attempts:
            # Reclaimed after its last attempt ran past the stage timeout.
            exc = StageTimeoutError(
                f"Stage '{job.stage}' exceeded {self._settings.stage_timeout_seconds}s "
                f"on every one of {job.attempts} attempts",
                stage=job.stage,
            )
            self._orchestrator.fail_chain(job, exc)
            return

        Log.info(
            f"Running job {job.id} (attempt {job.attempts + 1})",
            chain_id=job.chain_id,
            file_id=job.file_id,
            stage=job.stage,
        )
        try:
            self._orchestrator.run_job(job)
            Log.info(
                f"Job {job.id} completed successfully",
                chain_id=job.chain_id,
                file_id=job.file_id,
                stage=job.stage,
            )
        except Exception as exc:
            self._handle_failure(job, exc)

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        """Back to pending after a backoff while retryable and within budget, else fail."""
        decision = classify_failure(exc)
        Log.error(
            f"Job {job.id} failed: {decision.message}",
            chain_id=job.chain_id,
            file_id=job.file_id,
            stage=job.stage,
            category=decision.category,
            retryable=decision.retryable,
        )
        attempts_used = job.attempts + 1
        if decision.retryable and attempts_used < self._settings.max_stage_attempts:
            self._job_repo.schedule_retry(
                job.id,
                decision.message,
                self._settings.stage_retry_backoff_seconds,
            )
            Log.warning(
                f"Job {job.id} will be retried (attempt {attempts_used + 1})",
                chain_id=job.chain_id,
                file_id=job.file_id,
                stage=job.stage,
            )
            return

        self._orchestrator.fail_chain(job, exc, decision)
        Log.error(
            f"Job {job.id} permanently failed after {attempts_used} attempts",
            chain_id=job.chain_id,
            file_id=job.file_id,
            stage=job.stage,
        )
