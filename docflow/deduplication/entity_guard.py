from docflow.database.models import EntityRecord, UploadedFile
from docflow.database.repositories.entity_repository import EntityRepository
from docflow.deduplication.entity_builder import build_new_entity
from docflow.extraction.models import ExtractionResult
from docflow.logging.logger import Log


class EntityGuard:
    """Creates the primary entity of a file at most once."""

    def __init__(self, entity_repo: EntityRepository) -> None:
        self._entity_repo = entity_repo

    def get_or_create(
        self,
        file: UploadedFile,
        extraction: ExtractionResult,
    ) -> tuple[EntityRecord, bool]:
        """Return the file's primary entity, creating it from extraction if absent.

        Returns:
            (entity, created). When created is False the extraction was discarded.
        """
        existing = self._entity_repo.find_primary_for_file(file.id)
        if existing is not None:
            Log.info(
                "Entity already exists for file, discarding extraction",
                file_id=file.id,
                entity_id=existing.id,
            )
            return existing, False

        entity, created = self._entity_repo.insert_primary(build_new_entity(file, extraction))
        if created:
            Log.info(
                f"Created {entity.entity_type} entity",
                file_id=file.id,
                entity_id=entity.id,
            )
        else:
            Log.warning(
                "Concurrent entity insert detected, using existing entity",
                file_id=file.id,
                entity_id=entity.id,
            )
        return entity, created
