"""Flags files of one owner whose receipts or invoices look like the same purchase.

Content hashes only catch byte-identical uploads. A photo and a PDF of the
same receipt hash differently, so after an entity is created its key
attributes are compared with the owner's other entities of the same type.
"""

from typing import Any

import psycopg

from docflow.database.models import EntityRecord
from docflow.database.repositories.duplicate_flag_repository import DuplicateFlagRepository
from docflow.database.repositories.entity_repository import EntityRepository
from docflow.extraction.validation import to_number
from docflow.logging.logger import Log

MIN_MATCHES = 2

# criterion name -> (section, key) inside entity data
_CRITERIA: dict[str, dict[str, tuple[str, str]]] = {
    "receipt": {
        "total_amount": ("totals", "total_amount"),
        "merchant": ("merchant", "name"),
    },
    "invoice": {
        "total_amount": ("totals", "total_amount"),
        "invoice_number": ("invoice_info", "invoice_number"),
        "vendor": ("vendor", "name"),
    },
}


def _normalize(name: str, value: Any) -> str | None:
    if value is None or value == "":
        return None
    if name == "total_amount":
        number = to_number(value)
        return f"{number:.2f}" if number is not None else None
    text = " ".join(str(value).split()).casefold()
    return text or None


def match_criteria(entity: EntityRecord) -> dict[str, str]:
    """Comparable non-empty attributes of a receipt or invoice entity.

    Dates that were filled in from the upload time say nothing about the
    purchase, so they are left out.
    """
    criteria: dict[str, str] = {}
    if entity.entity_date is not None and not entity.uses_fallback_date:
        criteria["date"] = entity.entity_date.isoformat()
    for name, (section, key) in _CRITERIA.get(entity.entity_type, {}).items():
        block = entity.data.get(section)
        value = _normalize(name, block.get(key)) if isinstance(block, dict) else None
        if value is not None:
            criteria[name] = value
    return criteria


def matching_keys(left: dict[str, str], right: dict[str, str]) -> list[str]:
    return [name for name, value in left.items() if right.get(name) == value]


class DuplicateFlagger:
    """Records likely-duplicate file pairs after an entity is created."""

    def __init__(self, entity_repo: EntityRepository, flag_repo: DuplicateFlagRepository) -> None:
        self._entity_repo = entity_repo
        self._flag_repo = flag_repo

    def flag(self, entity: EntityRecord) -> list[int]:
        """Flag the owner's files that match this entity on enough attributes.

        Returns:
            Ids of the other files that were flagged. Lookup and write errors
            are logged and yield no flags; flagging never fails processing.
        """
        if entity.entity_type not in _CRITERIA:
            return []
        criteria = match_criteria(entity)
        if len(criteria) < MIN_MATCHES:
            return []

        try:
            return self._flag_matches(entity, criteria)
        except psycopg.Error as exc:
            Log.warning(
                f"Duplicate flagging failed: {exc}",
                file_id=entity.file_id,
                entity_id=entity.id,
            )
            return []

    def _flag_matches(self, entity: EntityRecord, criteria: dict[str, str]) -> list[int]:
        flagged: list[int] = []
        candidates = self._entity_repo.find_owner_entities(
            entity.user_id, entity.entity_type, exclude_file_id=entity.file_id
        )
        for candidate in candidates:
            keys = matching_keys(criteria, match_criteria(candidate))
            if len(keys) < MIN_MATCHES or candidate.file_id in flagged:
                continue
            reason = f"{entity.entity_type}_match_{'_'.join(keys)}"
            self._flag_repo.flag(entity.user_id, entity.file_id, candidate.file_id, reason)
            flagged.append(candidate.file_id)

        if flagged:
            Log.info(
                f"Flagged {len(flagged)} likely duplicate file(s)",
                file_id=entity.file_id,
                entity_id=entity.id,
                duplicate_file_ids=flagged,
            )
        return flagged
