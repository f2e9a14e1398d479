from typing import Any

from docflow.classification.models import DocumentType
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.validation import (
    compact,
    list_of_dicts,
    parse_iso_date,
    require_numeric,
    to_number,
)


class BankStatementExtractor(BaseEntityExtractor):
    """Bank account statements with their transactions."""

    document_type = DocumentType.BANK_STATEMENT
    required_fields = (
        "bank_name",
        "account_number",
        "statement_period_start",
        "statement_period_end",
    )
    date_fields = ("statement_period_start", "statement_period_end")

    def validate(self, raw: dict[str, Any]) -> None:
        super().validate(raw)
        require_numeric(raw, "opening_balance", "bank_statement")
        require_numeric(raw, "closing_balance", "bank_statement")

    def collect_warnings(self, raw: dict[str, Any]) -> list[str]:
        warnings: list[str] = []
        start = parse_iso_date(raw.get("statement_period_start"))
        end = parse_iso_date(raw.get("statement_period_end"))
        if start is not None and end is not None and end < start:
            warnings.append("Statement period ends before it starts")
        transactions = list_of_dicts(raw.get("transactions"))
        if not transactions:
            warnings.append("No transactions found")
        for index, transaction in enumerate(transactions, start=1):
            if to_number(transaction.get("amount")) is None:
                warnings.append(f"Transaction {index} is missing an amount")
            if not transaction.get("date"):
                warnings.append(f"Transaction {index} is missing a date")
        return warnings

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "bank": compact({"name": raw.get("bank_name")}),
            "account": compact(
                {
                    "holder": raw.get("account_holder"),
                    "number": raw.get("account_number"),
                    "currency": raw.get("currency"),
                }
            ),
            "period": compact(
                {
                    "start": raw.get("statement_period_start"),
                    "end": raw.get("statement_period_end"),
                }
            ),
            "balances": compact(
                {
                    "opening": to_number(raw.get("opening_balance")),
                    "closing": to_number(raw.get("closing_balance")),
                }
            ),
            "transactions": [
                compact(
                    {
                        "date": transaction.get("date"),
                        "description": transaction.get("description"),
                        "amount": to_number(transaction.get("amount")),
                        "balance": to_number(transaction.get("balance")),
                        "transaction_type": transaction.get("transaction_type"),
                    }
                )
                for transaction in list_of_dicts(raw.get("transactions"))
            ],
            "metadata": {},
        }
