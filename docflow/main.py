from docflow.config.settings import Settings
from docflow.database.connection import close_pool, init_pool
from docflow.database.repositories.chain_metadata_repository import ChainMetadataRepository
from docflow.database.repositories.job_repository import JobRepository
from docflow.logging.logger import Log
from docflow.pipeline.orchestrator import build_orchestrator
from docflow.worker.job_runner import JobRunner
from docflow.worker.worker import Worker


def build_worker(settings: Settings) -> Worker:
    job_repo = JobRepository(settings.max_stage_attempts, settings.stage_timeout_seconds)
    runner = JobRunner(build_orchestrator(settings), job_repo, settings)
    return Worker(
        job_repo,
        runner,
        ChainMetadataRepository(settings.chain_metadata_ttl_hours),
        settings,
    )


def main() -> None:
    """Run the stage worker until interrupted."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)
    Log.info("Starting docflow worker", app_env=settings.app_env)
    try:
        build_worker(settings).run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
