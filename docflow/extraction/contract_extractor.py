from typing import Any

from docflow.classification.models import DocumentType
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.validation import (
    compact,
    is_blank,
    list_of_dicts,
    list_of_strings,
    require_numeric,
    to_number,
)
from docflow.pipeline.exceptions import StructuralValidationError


class ContractExtractor(BaseEntityExtractor):
    """Contracts and agreements between two or more parties."""

    document_type = DocumentType.CONTRACT
    required_fields = ("contract_title", "parties")
    date_fields = ("effective_date", "expiry_date", "signature_date")

    def validate(self, raw: dict[str, Any]) -> None:
        super().validate(raw)
        parties = raw.get("parties")
        if not isinstance(parties, list):
            raise StructuralValidationError(
                "contract field 'parties' must be a list", entity="contract", field="parties"
            )
        for index, party in enumerate(parties, start=1):
            if not isinstance(party, dict) or is_blank(party.get("name")):
                raise StructuralValidationError(
                    f"contract party {index} is missing a name",
                    entity="contract",
                    field="parties",
                )
        require_numeric(raw, "contract_value", "contract")

    def collect_warnings(self, raw: dict[str, Any]) -> list[str]:
        warnings: list[str] = []
        if len(list_of_dicts(raw.get("parties"))) < 2:
            warnings.append("Contract lists fewer than 2 parties")
        if not raw.get("effective_date"):
            warnings.append("Contract effective date not found")
        for index, payment in enumerate(list_of_dicts(raw.get("payment_schedule")), start=1):
            if to_number(payment.get("amount")) is None:
                warnings.append(f"Payment schedule entry {index} is missing an amount")
        return warnings

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "contract_info": compact(
                {
                    "number": raw.get("contract_number"),
                    "title": raw.get("contract_title"),
                    "type": raw.get("contract_type"),
                    "status": raw.get("status") or "active",
                }
            ),
            "parties": [
                compact(
                    {
                        "name": party.get("name"),
                        "role": party.get("role"),
                        "contact": party.get("contact"),
                        "registration_number": party.get("registration_number"),
                    }
                )
                for party in list_of_dicts(raw.get("parties"))
            ],
            "dates": compact(
                {
                    "effective_date": raw.get("effective_date"),
                    "expiry_date": raw.get("expiry_date"),
                    "signature_date": raw.get("signature_date"),
                }
            ),
            "terms": compact(
                {
                    "duration": raw.get("duration"),
                    "renewal_terms": raw.get("renewal_terms"),
                    "termination_conditions": raw.get("termination_conditions"),
                }
            ),
            "financial": compact(
                {
                    "contract_value": to_number(raw.get("contract_value")),
                    "currency": raw.get("currency"),
                    "payment_schedule": [
                        compact(
                            {
                                "milestone": payment.get("milestone"),
                                "amount": to_number(payment.get("amount")),
                                "date": payment.get("date"),
                            }
                        )
                        for payment in list_of_dicts(raw.get("payment_schedule"))
                    ]
                    or None,
                }
            ),
            "legal": compact(
                {
                    "governing_law": raw.get("governing_law"),
                    "jurisdiction": raw.get("jurisdiction"),
                }
            ),
            "key_obligations": list_of_strings(raw.get("key_obligations")),
            "summary": raw.get("summary"),
            "metadata": {},
        }
