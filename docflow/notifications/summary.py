"""Short description of an extracted entity for success notifications."""

from dataclasses import dataclass
from typing import Any

from docflow.classification.models import DocumentType
from docflow.deduplication.entity_builder import resolve_entity_date
from docflow.extraction.models import ExtractionResult
from docflow.extraction.validation import to_number

# (section, key) lookups per type, first non-empty value wins.
_NAME_PATHS: dict[DocumentType, tuple[tuple[str, str], ...]] = {
    DocumentType.RECEIPT: (("merchant", "name"),),
    DocumentType.INVOICE: (("vendor", "name"),),
    DocumentType.VOUCHER: (("issuer", "name"),),
    DocumentType.WARRANTY: (("product", "name"), ("provider", "name")),
    DocumentType.CONTRACT: (("contract_info", "title"),),
    DocumentType.BANK_STATEMENT: (("bank", "name"),),
    DocumentType.DOCUMENT: (("metadata", "title"),),
}

_AMOUNT_PATHS: dict[DocumentType, tuple[tuple[str, str], ...]] = {
    DocumentType.RECEIPT: (("totals", "total_amount"),),
    DocumentType.INVOICE: (("totals", "total_amount"), ("totals", "amount_due")),
    DocumentType.VOUCHER: (("value", "amount"),),
    DocumentType.CONTRACT: (("financial", "contract_value"),),
    DocumentType.BANK_STATEMENT: (("balances", "closing"),),
}

_CURRENCY_PATHS: dict[DocumentType, tuple[tuple[str, str], ...]] = {
    DocumentType.RECEIPT: (("payment", "currency"),),
    DocumentType.INVOICE: (("payment", "currency"),),
    DocumentType.VOUCHER: (("value", "currency"),),
    DocumentType.CONTRACT: (("financial", "currency"),),
    DocumentType.BANK_STATEMENT: (("account", "currency"),),
}


@dataclass(frozen=True)
class EntitySummary:
    document_type: str | None
    entity_id: int | None
    name: str | None = None
    amount: float | None = None
    currency: str | None = None
    entity_date: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "document_type": self.document_type,
            "entity_id": self.entity_id,
            "name": self.name,
            "amount": self.amount,
            "currency": self.currency,
            "entity_date": self.entity_date,
        }

    def describe(self) -> str:
        """One line for humans, e.g. "Rema 1000, 129.50 NOK, 2026-02-27"."""
        parts = [self.name or "Unknown"]
        if self.amount is not None:
            parts.append(f"{self.amount:.2f} {self.currency or ''}".rstrip())
        if self.entity_date:
            parts.append(self.entity_date)
        return ", ".join(parts)


def _lookup(data: dict[str, Any], paths: tuple[tuple[str, str], ...]) -> Any:
    for section, key in paths:
        block = data.get(section)
        if isinstance(block, dict) and block.get(key) not in (None, ""):
            return block[key]
    return None


def summarize_extraction(
    extraction: ExtractionResult | None,
    entity_id: int | None,
) -> EntitySummary:
    if extraction is None:
        return EntitySummary(document_type=None, entity_id=entity_id)

    doc_type = extraction.type
    name = _lookup(extraction.data, _NAME_PATHS.get(doc_type, ()))
    currency = _lookup(extraction.data, _CURRENCY_PATHS.get(doc_type, ()))
    entity_date = resolve_entity_date(extraction)
    return EntitySummary(
        document_type=doc_type.value,
        entity_id=entity_id,
        name=str(name) if name is not None else None,
        amount=to_number(_lookup(extraction.data, _AMOUNT_PATHS.get(doc_type, ()))),
        currency=str(currency) if currency is not None else None,
        entity_date=entity_date.isoformat() if entity_date else None,
    )
