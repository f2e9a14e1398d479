import os
import random
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from docflow.cli import SCHEMA_PATH
from docflow.config.settings import Settings
from docflow.database.connection import close_pool, get_connection, init_pool
from docflow.database.models import UploadedFile
from docflow.database.repositories.uploaded_files_repository import UploadedFilesRepository


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "docflow_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def empty_queue(db_conn: psycopg.Connection[Any]) -> None:
    """The worker claims any runnable job, so each test starts from an empty queue."""
    db_conn.execute("DELETE FROM stage_jobs")
    db_conn.execute("DELETE FROM chain_metadata")
    db_conn.commit()


@pytest.fixture
def owner_id() -> int:
    """A user id no other test run is likely to share."""
    return random.randint(10**9, 2 * 10**9)


@pytest.fixture
def integration_cleanup(
    integration_pool: None,
    owner_id: int,
) -> Generator[None, None, None]:
    yield
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM stage_jobs WHERE file_id IN "
                "(SELECT id FROM uploaded_files WHERE user_id = %s)",
                (owner_id,),
            )
            cur.execute("DELETE FROM processing_analytics WHERE user_id = %s", (owner_id,))
            cur.execute("DELETE FROM uploaded_files WHERE user_id = %s", (owner_id,))
        conn.commit()


@pytest.fixture
def seed_file(
    integration_cleanup: None,
    owner_id: int,
) -> UploadedFile:
    guid = str(uuid.uuid4())
    return UploadedFilesRepository().create(
        guid=guid,
        user_id=owner_id,
        file_name="receipt.jpg",
        extension="jpg",
        mime_type="image/jpeg",
        file_size=1024,
        content_hash=uuid.uuid4().hex * 2,
        category="receipt",
        remote_original_path=f"files/{owner_id}/{guid}/original.jpg",
    )
