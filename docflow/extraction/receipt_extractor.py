from typing import Any

from docflow.classification.models import DocumentType
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.validation import (
    compact,
    list_of_dicts,
    list_of_strings,
    require_numeric,
    to_number,
)

DEFAULT_CURRENCY = "NOK"


class ReceiptExtractor(BaseEntityExtractor):
    """Purchase receipts: merchant, line items, totals and payment."""

    document_type = DocumentType.RECEIPT
    required_fields = ("merchant_name", "total_amount")
    date_fields = ("receipt_date",)

    def validate(self, raw: dict[str, Any]) -> None:
        super().validate(raw)
        require_numeric(raw, "total_amount", "receipt")

    def collect_warnings(self, raw: dict[str, Any]) -> list[str]:
        warnings: list[str] = []
        if not raw.get("receipt_date"):
            warnings.append("Receipt date not found")
        for index, item in enumerate(list_of_dicts(raw.get("items")), start=1):
            if to_number(item.get("total_price")) is None:
                warnings.append(f"Item {index} is missing total_price")
        return warnings

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "merchant": compact(
                {
                    "name": raw.get("merchant_name"),
                    "address": raw.get("merchant_address"),
                    "vat_number": raw.get("merchant_vat_number"),
                    "phone": raw.get("merchant_phone"),
                    "category": raw.get("merchant_category"),
                }
            ),
            "receipt_info": compact(
                {
                    "date": raw.get("receipt_date"),
                    "time": raw.get("receipt_time"),
                    "receipt_number": raw.get("receipt_number"),
                }
            ),
            "items": [self._normalize_item(item) for item in list_of_dicts(raw.get("items"))],
            "totals": compact(
                {
                    "subtotal": to_number(raw.get("subtotal")),
                    "tax_amount": to_number(raw.get("tax_amount")),
                    "total_amount": to_number(raw.get("total_amount")),
                    "total_discount": to_number(raw.get("total_discount")),
                }
            ),
            "payment": compact(
                {
                    "method": raw.get("payment_method"),
                    "card_type": raw.get("card_type"),
                    "currency": raw.get("currency") or DEFAULT_CURRENCY,
                }
            ),
            "receipt_description": raw.get("description"),
            "receipt_category": raw.get("category"),
            "vendors": list_of_strings(raw.get("vendors")),
            "metadata": {},
        }

    @staticmethod
    def _normalize_item(item: dict[str, Any]) -> dict[str, Any]:
        return compact(
            {
                "name": item.get("name"),
                "quantity": to_number(item.get("quantity")),
                "unit_price": to_number(item.get("unit_price")),
                "total_price": to_number(item.get("total_price")),
                "vat_rate": to_number(item.get("vat_rate")),
            }
        )
