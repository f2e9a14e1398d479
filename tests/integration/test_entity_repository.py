from datetime import date

import pytest

from docflow.database.models import NewEntity, UploadedFile
from docflow.database.repositories.entity_repository import EntityRepository
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository


def _new_entity(file: UploadedFile) -> NewEntity:
    return NewEntity(
        file_id=file.id,
        user_id=file.user_id,
        entity_type="receipt",
        confidence=0.9,
        data={"merchant": {"name": "Rema"}, "metadata": {"fallback_date_used": False}},
        entity_date=date(2026, 2, 27),
        children={"items": [{"name": "Milk"}, {"name": "Bread"}]},
    )


@pytest.mark.integration
class TestEntityRepository:
    def test_second_primary_insert_returns_existing(self, seed_file: UploadedFile) -> None:
        repo = EntityRepository()

        first, created = repo.insert_primary(_new_entity(seed_file))
        second, created_again = repo.insert_primary(_new_entity(seed_file))

        assert created is True
        assert created_again is False
        assert second.id == first.id
        assert repo.count_children(first.id) == 2
        assert [e.id for e in repo.find_for_file(seed_file.id)] == [first.id]

    def test_delete_entity_releases_hash(self, seed_file: UploadedFile) -> None:
        repo = EntityRepository()
        entity, _ = repo.insert_primary(_new_entity(seed_file))

        assert repo.delete_entity(entity.id) is True

        assert repo.find_primary_for_file(seed_file.id) is None
        assert UploadedFilesRepository().find_by_id(seed_file.id).content_hash is None
        assert repo.delete_entity(entity.id) is False
