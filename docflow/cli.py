"""Maintenance commands for the docflow worker."""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from docflow.config.settings import Settings
from docflow.database.connection import close_pool, get_connection, init_pool
from docflow.database.repositories.analytics_repository import AnalyticsRepository
from docflow.database.repositories.duplicate_flag_repository import DuplicateFlagRepository
from docflow.database.repositories.entity_repository import EntityRepository
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository
from docflow.deduplication.cleaner import DuplicateEntityCleaner
from docflow.deduplication.file_deduplicator import FileDeduplicator
from docflow.logging.logger import Log
from docflow.main import build_worker
from docflow.pipeline.chain import CATEGORIES
from docflow.pipeline.exceptions import FileRecordNotFoundError
from docflow.pipeline.orchestrator import build_orchestrator
from docflow.pipeline.upload import UploadService
from docflow.storage.factory import ObjectStorageFactory

SCHEMA_PATH = Path(__file__).parent / "database" / "schema.sql"


@contextmanager
def _database(settings: Settings) -> Generator[None, None, None]:
    init_pool(settings)
    try:
        yield
    finally:
        close_pool()


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """docflow command-line interface"""
    settings = Settings()
    Log.configure(settings.log_level)
    ctx.obj = settings


@cli.command("init-db")
@click.pass_obj
def init_db(settings: Settings) -> None:
    """Create the tables and indexes if they do not exist."""
    schema = SCHEMA_PATH.read_text(encoding="utf-8")
    with _database(settings):
        with get_connection() as conn:
            conn.execute(schema)
            conn.commit()
    click.echo("Schema applied")


@cli.command()
@click.option("--max-jobs", type=int, default=None, help="Stop after this many jobs")
@click.pass_obj
def worker(settings: Settings, max_jobs: int | None) -> None:
    """Run the stage job poll loop."""
    with _database(settings):
        build_worker(settings).run(max_jobs=max_jobs)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--user-id", type=int, required=True, help="Owner of the upload")
@click.option("--category", type=click.Choice(list(CATEGORIES)), default="document")
@click.option("--mime-type", default="application/pdf", show_default=True)
@click.option("--tag", "tag_ids", type=int, multiple=True, help="Tag id, repeatable")
@click.option("--note", default=None)
@click.pass_obj
def upload(
    settings: Settings,
    path: Path,
    user_id: int,
    category: str,
    mime_type: str,
    tag_ids: tuple[int, ...],
    note: str | None,
) -> None:
    """Upload a local file and dispatch its processing chain."""
    with _database(settings):
        files_repo = UploadedFilesRepository()
        service = UploadService(
            ObjectStorageFactory.create(settings),
            files_repo,
            FileDeduplicator(files_repo),
            build_orchestrator(settings),
        )
        result = service.ingest(
            user_id=user_id,
            file_name=path.name,
            data=path.read_bytes(),
            mime_type=mime_type,
            category=category,
            tag_ids=list(tag_ids),
            note=note,
        )
    if result.duplicate:
        click.echo(f"Duplicate of file {result.file.id} (status: {result.file.status})")
    else:
        click.echo(f"File {result.file.id} dispatched as chain {result.chain_id}")


@cli.command()
@click.argument("chain_id")
@click.pass_obj
def restart(settings: Settings, chain_id: str) -> None:
    """Re-run a chain from its first stage."""
    with _database(settings):
        try:
            task_id = build_orchestrator(settings).restart(chain_id)
        except (ValueError, FileRecordNotFoundError) as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Chain {chain_id} restarted as task {task_id}")


@cli.command()
@click.argument("file_id", type=int)
@click.pass_obj
def status(settings: Settings, file_id: int) -> None:
    """Show processing status and progress of a file."""
    with _database(settings):
        try:
            progress = build_orchestrator(settings).get_status(file_id)
        except FileRecordNotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"File {progress.file_id}: {progress.status} ({progress.progress}%)")
    if progress.chain_id:
        click.echo(f"  chain: {progress.chain_id}")
    if progress.current_stage:
        click.echo(f"  stage: {progress.current_stage}")
    if progress.last_error:
        click.echo(f"  error: {progress.last_error}")


@cli.command("cleanup-duplicates")
@click.option("--file-id", type=int, default=None, help="Only clean this file")
@click.option("--dry-run", is_flag=True, help="Report what would be deleted")
@click.pass_obj
def cleanup_duplicates(settings: Settings, file_id: int | None, dry_run: bool) -> None:
    """Keep one survivor entity per file and delete the rest."""
    with _database(settings):
        cleaner = DuplicateEntityCleaner(EntityRepository())
        if file_id is not None:
            reports = [cleaner.clean_file(file_id, dry_run=dry_run)]
        else:
            reports = cleaner.clean_all(dry_run=dry_run)

    verb = "would delete" if dry_run else "deleted"
    total = 0
    for report in reports:
        if not report.deleted_entity_ids:
            continue
        total += len(report.deleted_entity_ids)
        click.echo(
            f"File {report.file_id}: kept {report.kept_entity_id}, {verb} "
            f"{', '.join(str(entity_id) for entity_id in report.deleted_entity_ids)}"
        )
    click.echo(f"{total} duplicate entities {verb}")


@cli.command("delete-entity")
@click.argument("entity_id", type=int)
@click.pass_obj
def delete_entity(settings: Settings, entity_id: int) -> None:
    """Delete an entity and release its file's content hash."""
    with _database(settings):
        deleted = EntityRepository().delete_entity(entity_id)
    if not deleted:
        raise click.ClickException(f"Entity {entity_id} not found")
    click.echo(f"Entity {entity_id} deleted")


@cli.command("duplicate-flags")
@click.argument("file_id", type=int)
@click.pass_obj
def duplicate_flags(settings: Settings, file_id: int) -> None:
    """List files flagged as likely duplicates of a file."""
    with _database(settings):
        flags = DuplicateFlagRepository().find_for_file(file_id)
    if not flags:
        click.echo(f"No duplicate flags for file {file_id}")
        return
    for flag in flags:
        other = flag.duplicate_file_id if flag.file_id == file_id else flag.file_id
        click.echo(f"File {other}: {flag.reason}")


@cli.command()
@click.option("--days", type=int, default=30, show_default=True)
@click.pass_obj
def analytics(settings: Settings, days: int) -> None:
    """Print processing quality figures for the last N days."""
    with _database(settings):
        repo = AnalyticsRepository()
        unknown = repo.unknown_type_frequency(days)
        low = repo.low_confidence_rate(settings.classification_threshold, days)
        by_type = repo.validation_failure_rate_by_type(days)
        types = repo.type_distribution(days)
        failures = repo.failure_distribution(days)

    click.echo(f"Unknown type: {unknown.matching}/{unknown.total} ({unknown.rate:.1%})")
    click.echo(f"Low confidence: {low.matching}/{low.total} ({low.rate:.1%})")
    click.echo("Validation failures by type:")
    for row in by_type:
        click.echo(f"  {row.document_type}: {row.failures}/{row.total} ({row.rate:.1%})")
    click.echo("Document types:")
    for name, count in types.items():
        click.echo(f"  {name}: {count}")
    click.echo("Failure categories:")
    for name, count in failures.items():
        click.echo(f"  {name}: {count}")


if __name__ == "__main__":
    cli()
