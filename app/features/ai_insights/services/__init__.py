"""
Service layer for AI insights.
"""

from .classify_batch_service import ClassifyBatchService, classify_batch_service
from .insight_service import ContactNotFoundError, InsightService, NoEmailsError, insight_service
from .llm_client import AiServiceError, LlmClient, llm_client
from .response_parser import AiResponseInvalidError

__all__ = [
    "AiResponseInvalidError",
    "AiServiceError",
    "ClassifyBatchService",
    "ContactNotFoundError",
    "InsightService",
    "LlmClient",
    "NoEmailsError",
    "classify_batch_service",
    "insight_service",
    "llm_client",
]
