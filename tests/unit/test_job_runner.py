from unittest.mock import MagicMock

from docflow.ai.exceptions import ProviderError
from docflow.database.models import JobRecord
from docflow.pipeline.exceptions import (
    ClassificationRejectedError,
    StageTimeoutError,
    TransientProviderError,
)
from docflow.worker.job_runner import JobRunner


def _make_runner(
    max_attempts: int = 5,
) -> tuple[JobRunner, MagicMock, MagicMock]:
    """Create a JobRunner with mocked dependencies."""
    mock_orchestrator = MagicMock()
    mock_repo = MagicMock()
    settings = MagicMock(
        max_stage_attempts=max_attempts,
        stage_retry_backoff_seconds=10,
        stage_timeout_seconds=3600,
    )
    runner = JobRunner(mock_orchestrator, mock_repo, settings)
    return runner, mock_orchestrator, mock_repo


def _make_job(attempts: int = 0) -> JobRecord:
    return JobRecord(
        id=1,
        chain_id="chain-1",
        task_id="task-1",
        file_id=10,
        stage="analyze_file",
        position=0,
        status="processing",
        attempts=attempts,
    )


class TestSuccessfulProcessing:
    def test_runs_job_through_orchestrator(self) -> None:
        runner, mock_orchestrator, _repo = _make_runner()
        job = _make_job()

        runner.run(job)

        mock_orchestrator.run_job.assert_called_once_with(job)

    def test_does_not_retry_or_fail(self) -> None:
        runner, mock_orchestrator, mock_repo = _make_runner()

        runner.run(_make_job())

        mock_repo.schedule_retry.assert_not_called()
        mock_orchestrator.fail_chain.assert_not_called()


class TestRetryableFailure:
    def test_schedules_retry_with_backoff(self) -> None:
        runner, mock_orchestrator, mock_repo = _make_runner(max_attempts=5)
        mock_orchestrator.run_job.side_effect = TransientProviderError("rate limited")

        runner.run(_make_job(attempts=0))

        mock_repo.schedule_retry.assert_called_once_with(1, "rate limited", 10)
        mock_orchestrator.fail_chain.assert_not_called()

    def test_unexpected_exception_is_retried(self) -> None:
        runner, mock_orchestrator, mock_repo = _make_runner(max_attempts=5)
        mock_orchestrator.run_job.side_effect = RuntimeError("boom")

        runner.run(_make_job(attempts=2))

        mock_repo.schedule_retry.assert_called_once_with(1, "boom", 10)

    def test_fails_when_budget_exhausted(self) -> None:
        runner, mock_orchestrator, mock_repo = _make_runner(max_attempts=5)
        exc = RuntimeError("boom")
        mock_orchestrator.run_job.side_effect = exc
        job = _make_job(attempts=4)

        runner.run(job)

        mock_repo.schedule_retry.assert_not_called()
        mock_orchestrator.fail_chain.assert_called_once()
        args = mock_orchestrator.fail_chain.call_args.args
        assert args[0] is job
        assert args[1] is exc
        assert args[2].category == "unknown_error"


class TestTerminalFailure:
    def test_terminal_error_fails_on_first_attempt(self) -> None:
        runner, mock_orchestrator, mock_repo = _make_runner()
        mock_orchestrator.run_job.side_effect = ClassificationRejectedError("too unsure")

        runner.run(_make_job(attempts=0))

        mock_repo.schedule_retry.assert_not_called()
        decision = mock_orchestrator.fail_chain.call_args.args[2]
        assert decision.category == "classification_low_confidence"
        assert decision.retryable is False

    def test_non_retryable_provider_error_fails(self) -> None:
        runner, mock_orchestrator, mock_repo = _make_runner()
        mock_orchestrator.run_job.side_effect = ProviderError(
            "client_error", "bad request", retryable=False
        )

        runner.run(_make_job())

        mock_repo.schedule_retry.assert_not_called()
        assert mock_orchestrator.fail_chain.call_args.args[2].category == "api_error"


class TestTimedOutJob:
    def test_reclaimed_job_over_budget_fails_without_running(self) -> None:
        runner, mock_orchestrator, _repo = _make_runner(max_attempts=5)
        job = _make_job(attempts=5)

        runner.run(job)

        mock_orchestrator.run_job.assert_not_called()
        exc = mock_orchestrator.fail_chain.call_args.args[1]
        assert isinstance(exc, StageTimeoutError)
