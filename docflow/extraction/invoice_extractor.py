from typing import Any

from docflow.classification.models import DocumentType
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.validation import compact, list_of_dicts, require_numeric, to_number

DEFAULT_CURRENCY = "NOK"

_AMOUNT_FIELDS = (
    "subtotal",
    "tax_amount",
    "discount_amount",
    "shipping_amount",
    "total_amount",
    "amount_paid",
    "amount_due",
)


class InvoiceExtractor(BaseEntityExtractor):
    """Business invoices: vendor, customer, line items, totals and payment state."""

    document_type = DocumentType.INVOICE
    required_fields = ("vendor_name", "invoice_number", "total_amount")
    date_fields = ("invoice_date", "due_date", "delivery_date")

    def validate(self, raw: dict[str, Any]) -> None:
        super().validate(raw)
        require_numeric(raw, "total_amount", "invoice")

    def collect_warnings(self, raw: dict[str, Any]) -> list[str]:
        warnings: list[str] = []
        if not raw.get("invoice_date"):
            warnings.append("Invoice date not found")
        for name in _AMOUNT_FIELDS:
            if raw.get(name) is not None and to_number(raw.get(name)) is None:
                warnings.append(f"Invoice field {name} is not numeric: {raw.get(name)}")
        for index, line in enumerate(list_of_dicts(raw.get("line_items")), start=1):
            if not line.get("description"):
                warnings.append(f"Line item {index} is missing a description")
            if to_number(line.get("total_amount")) is None:
                warnings.append(f"Line item {index} is missing total_amount")
        return warnings

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "vendor": self._party(raw, "vendor"),
            "customer": self._party(raw, "customer"),
            "invoice_info": compact(
                {
                    "invoice_number": raw.get("invoice_number"),
                    "invoice_type": raw.get("invoice_type") or "invoice",
                    "invoice_date": raw.get("invoice_date"),
                    "due_date": raw.get("due_date"),
                    "delivery_date": raw.get("delivery_date"),
                    "purchase_order_number": raw.get("purchase_order_number"),
                    "reference_number": raw.get("reference_number"),
                }
            ),
            "line_items": [self._line(line) for line in list_of_dicts(raw.get("line_items"))],
            "totals": compact({name: to_number(raw.get(name)) for name in _AMOUNT_FIELDS}),
            "payment": compact(
                {
                    "method": raw.get("payment_method"),
                    "status": raw.get("payment_status") or "unpaid",
                    "terms": raw.get("payment_terms"),
                    "currency": raw.get("currency") or DEFAULT_CURRENCY,
                }
            ),
            "notes": raw.get("notes"),
            "metadata": {},
        }

    @staticmethod
    def _party(raw: dict[str, Any], prefix: str) -> dict[str, Any]:
        return compact(
            {
                "name": raw.get(f"{prefix}_name"),
                "address": raw.get(f"{prefix}_address"),
                "vat_number": raw.get(f"{prefix}_vat_number"),
                "email": raw.get(f"{prefix}_email"),
                "phone": raw.get(f"{prefix}_phone"),
            }
        )

    @staticmethod
    def _line(line: dict[str, Any]) -> dict[str, Any]:
        numeric = (
            "quantity",
            "unit_price",
            "discount_percent",
            "discount_amount",
            "tax_rate",
            "tax_amount",
            "total_amount",
        )
        return compact(
            {
                "line_number": line.get("line_number"),
                "description": line.get("description"),
                "sku": line.get("sku"),
                "unit_of_measure": line.get("unit_of_measure"),
                "category": line.get("category"),
                **{name: to_number(line.get(name)) for name in numeric},
            }
        )
