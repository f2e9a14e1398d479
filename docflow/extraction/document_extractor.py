from typing import Any

from docflow.classification.models import DocumentType
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.validation import compact, list_of_dicts, list_of_strings


class DocumentExtractor(BaseEntityExtractor):
    """Generic documents that fit no specialised type."""

    document_type = DocumentType.DOCUMENT
    required_fields = ("document_title",)
    date_fields = ("creation_date",)

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "metadata": compact(
                {
                    "title": raw.get("document_title"),
                    "type": raw.get("document_type"),
                    "category": raw.get("document_category"),
                    "author": raw.get("author"),
                    "creation_date": raw.get("creation_date"),
                    "language": raw.get("language"),
                    "page_count": raw.get("page_count"),
                }
            ),
            "content": compact(
                {
                    "summary": raw.get("summary"),
                    "key_points": list_of_strings(raw.get("key_points")) or None,
                }
            ),
            "entities": [
                compact({"name": entity.get("entity_name"), "type": entity.get("entity_type")})
                for entity in list_of_dicts(raw.get("entities_mentioned"))
                if entity.get("entity_name")
            ],
            "tags": list_of_strings(raw.get("tags")),
        }
