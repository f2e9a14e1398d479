from dataclasses import dataclass, field

from docflow.database.repositories.entity_repository import EntityRepository
from docflow.deduplication.selection import select_survivor
from docflow.logging.logger import Log


@dataclass(frozen=True)
class CleanupReport:
    file_id: int
    kept_entity_id: int | None
    deleted_entity_ids: list[int] = field(default_factory=list)
    dry_run: bool = False


class DuplicateEntityCleaner:
    """Collapses historical duplicate entities down to one survivor per file."""

    def __init__(self, entity_repo: EntityRepository) -> None:
        self._entity_repo = entity_repo

    def clean_file(self, file_id: int, *, dry_run: bool = False) -> CleanupReport:
        entities = self._entity_repo.find_for_file(file_id)
        if len(entities) <= 1:
            kept = entities[0].id if entities else None
            return CleanupReport(file_id=file_id, kept_entity_id=kept, dry_run=dry_run)

        survivor = select_survivor(entities)
        losers = [entity.id for entity in entities if entity.id != survivor.id]
        if not dry_run:
            self._entity_repo.delete_entities(losers)
        Log.info(
            f"{'Would delete' if dry_run else 'Deleted'} {len(losers)} duplicate entities",
            file_id=file_id,
            kept_entity_id=survivor.id,
            deleted_entity_ids=losers,
        )
        return CleanupReport(
            file_id=file_id,
            kept_entity_id=survivor.id,
            deleted_entity_ids=losers,
            dry_run=dry_run,
        )

    def clean_all(self, *, dry_run: bool = False) -> list[CleanupReport]:
        reports = [
            self.clean_file(file_id, dry_run=dry_run)
            for file_id in self._entity_repo.find_duplicate_file_ids()
        ]
        Log.info(f"Duplicate cleanup finished for {len(reports)} files", dry_run=dry_run)
        return reports
