from typing import Any

from docflow.classification.models import DocumentType
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.validation import compact, parse_iso_date


class WarrantyExtractor(BaseEntityExtractor):
    """Product warranties and guarantees."""

    document_type = DocumentType.WARRANTY
    required_fields = ("provider_name", "product_name", "warranty_end_date")
    date_fields = ("purchase_date", "warranty_start_date", "warranty_end_date")

    def collect_warnings(self, raw: dict[str, Any]) -> list[str]:
        start = parse_iso_date(raw.get("warranty_start_date") or raw.get("purchase_date"))
        end = parse_iso_date(raw.get("warranty_end_date"))
        if start is not None and end is not None and end < start:
            return [f"Warranty ends ({end.isoformat()}) before it starts ({start.isoformat()})"]
        return []

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "provider": compact(
                {"name": raw.get("provider_name"), "contact": raw.get("provider_contact")}
            ),
            "product": compact(
                {
                    "name": raw.get("product_name"),
                    "model": raw.get("product_model"),
                    "serial_number": raw.get("serial_number"),
                }
            ),
            "dates": compact(
                {
                    "purchase_date": raw.get("purchase_date"),
                    "warranty_start_date": raw.get("warranty_start_date"),
                    "warranty_end_date": raw.get("warranty_end_date"),
                }
            ),
            "coverage": compact(
                {
                    "type": raw.get("coverage_type"),
                    "details": raw.get("coverage_details"),
                    "terms_conditions": raw.get("terms_conditions"),
                }
            ),
            "metadata": {},
        }
