from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.exceptions import ProviderError
from docflow.ai.factory import AIClientFactory
from docflow.ai.models import AnalysisResponse, FileReference

__all__ = [
    "AIClientFactory",
    "AnalysisResponse",
    "BaseFileAnalysisClient",
    "FileReference",
    "ProviderError",
]
