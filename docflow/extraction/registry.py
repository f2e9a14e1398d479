from collections.abc import Iterable
from pathlib import Path

from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.classification.models import DocumentType
from docflow.extraction.bank_statement_extractor import BankStatementExtractor
from docflow.extraction.base import BaseEntityExtractor
from docflow.extraction.contract_extractor import ContractExtractor
from docflow.extraction.document_extractor import DocumentExtractor
from docflow.extraction.invoice_extractor import InvoiceExtractor
from docflow.extraction.receipt_extractor import ReceiptExtractor
from docflow.extraction.voucher_extractor import VoucherExtractor
from docflow.extraction.warranty_extractor import WarrantyExtractor
from docflow.pipeline.exceptions import UnsupportedTypeError

EXTRACTOR_CLASSES: tuple[type[BaseEntityExtractor], ...] = (
    ReceiptExtractor,
    InvoiceExtractor,
    VoucherExtractor,
    WarrantyExtractor,
    ContractExtractor,
    BankStatementExtractor,
    DocumentExtractor,
)


class ExtractorRegistry:
    """Maps a classified document type to its extractor instance."""

    def __init__(self, extractors: Iterable[BaseEntityExtractor]) -> None:
        self._extractors: dict[DocumentType, BaseEntityExtractor] = {}
        for extractor in extractors:
            if extractor.document_type in self._extractors:
                raise ValueError(
                    f"Duplicate extractor for document type '{extractor.document_type.value}'"
                )
            self._extractors[extractor.document_type] = extractor

    @property
    def types(self) -> list[DocumentType]:
        return list(self._extractors)

    def supports(self, document_type: DocumentType | str) -> bool:
        return DocumentType.parse(document_type) in self._extractors

    def resolve(self, document_type: DocumentType | str) -> BaseEntityExtractor:
        """Return the extractor for a type.

        Raises:
            UnsupportedTypeError: if no extractor is registered; never falls
                back to the generic document extractor.
        """
        parsed = DocumentType.parse(document_type)
        extractor = self._extractors.get(parsed)
        if extractor is None:
            raw_value = document_type.value if isinstance(document_type, DocumentType) else document_type
            raise UnsupportedTypeError(str(raw_value))
        return extractor


def build_extractor_registry(
    client: BaseFileAnalysisClient,
    prompt_dir: Path | None = None,
) -> ExtractorRegistry:
    """Instantiate every extractor once, at process start."""
    return ExtractorRegistry(cls(client, prompt_dir) for cls in EXTRACTOR_CLASSES)
