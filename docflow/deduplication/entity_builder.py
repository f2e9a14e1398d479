"""Turns an extraction result into an insertable entity row."""

from datetime import date
from typing import Any

from docflow.classification.models import DocumentType
from docflow.database.models import NewEntity, UploadedFile
from docflow.extraction.models import ExtractionResult
from docflow.extraction.validation import parse_iso_date

# Candidate (section, key) paths for the entity's own date, first match wins.
PRIMARY_DATE_PATHS: dict[DocumentType, tuple[tuple[str, str], ...]] = {
    DocumentType.RECEIPT: (("receipt_info", "date"),),
    DocumentType.INVOICE: (("invoice_info", "invoice_date"), ("invoice_info", "due_date")),
    DocumentType.VOUCHER: (("dates", "issue_date"), ("dates", "expiry_date")),
    DocumentType.WARRANTY: (("dates", "purchase_date"), ("dates", "warranty_start_date")),
    DocumentType.CONTRACT: (("dates", "effective_date"), ("dates", "signature_date")),
    DocumentType.BANK_STATEMENT: (("period", "end"), ("period", "start")),
    DocumentType.DOCUMENT: (("metadata", "creation_date"),),
}

CHILD_COLLECTIONS: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.RECEIPT: ("items",),
    DocumentType.INVOICE: ("line_items",),
    DocumentType.CONTRACT: ("parties",),
    DocumentType.BANK_STATEMENT: ("transactions",),
}


def resolve_entity_date(extraction: ExtractionResult) -> date | None:
    for section, key in PRIMARY_DATE_PATHS.get(extraction.type, ()):
        block = extraction.data.get(section)
        if isinstance(block, dict):
            parsed = parse_iso_date(block.get(key))
            if parsed is not None:
                return parsed
    return None


def build_new_entity(
    file: UploadedFile,
    extraction: ExtractionResult,
    today: date | None = None,
) -> NewEntity:
    """Build the entity row, falling back to the upload date when no date was extracted.

    Entities using the fallback carry ``metadata.fallback_date_used = True`` so
    duplicate cleanup can prefer ones with a genuine date.
    """
    data: dict[str, Any] = dict(extraction.data)
    metadata = dict(data.get("metadata") or {})

    entity_date = resolve_entity_date(extraction)
    if entity_date is None:
        fallback = file.created_at.date() if file.created_at else (today or date.today())
        entity_date = fallback
        metadata["fallback_date_used"] = True
    else:
        metadata["fallback_date_used"] = False
    data["metadata"] = metadata

    children = {
        kind: [item for item in data.get(kind) or [] if isinstance(item, dict)]
        for kind in CHILD_COLLECTIONS.get(extraction.type, ())
    }
    return NewEntity(
        file_id=file.id,
        user_id=file.user_id,
        entity_type=extraction.type.value,
        confidence=extraction.confidence,
        data=data,
        entity_date=entity_date,
        children={kind: items for kind, items in children.items() if items},
    )
