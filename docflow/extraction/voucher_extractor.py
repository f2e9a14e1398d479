from datetime import date
from typing import Any

from docflow.classification.models import DocumentType
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.validation import compact, parse_iso_date, to_number

DEFAULT_CURRENCY = "NOK"


class VoucherExtractor(BaseEntityExtractor):
    """Gift cards, store credit and discount vouchers."""

    document_type = DocumentType.VOUCHER
    required_fields = ("issuer_name", "voucher_code")
    date_fields = ("issue_date", "expiry_date")

    def collect_warnings(self, raw: dict[str, Any]) -> list[str]:
        warnings: list[str] = []
        expiry = parse_iso_date(raw.get("expiry_date"))
        if raw.get("expiry_date") is None:
            warnings.append("Voucher expiry date not found")
        elif expiry is not None and expiry < date.today():
            warnings.append(f"Voucher expired on {expiry.isoformat()}")
        value = raw.get("value_amount")
        if value is None:
            warnings.append("Voucher value not found")
        elif to_number(value) is None:
            warnings.append(f"Voucher value is not numeric: {value}")
        return warnings

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "issuer": compact(
                {"name": raw.get("issuer_name"), "contact": raw.get("issuer_contact")}
            ),
            "voucher": compact(
                {"code": raw.get("voucher_code"), "type": raw.get("voucher_type")}
            ),
            "dates": compact(
                {"issue_date": raw.get("issue_date"), "expiry_date": raw.get("expiry_date")}
            ),
            "value": compact(
                {
                    "amount": to_number(raw.get("value_amount")),
                    "currency": raw.get("currency") or DEFAULT_CURRENCY,
                }
            ),
            "redemption": compact(
                {
                    "instructions": raw.get("redemption_instructions"),
                    "terms_conditions": raw.get("terms_conditions"),
                }
            ),
            "metadata": {},
        }
