"""
Domain subpackage for AI insights.
"""

from .models import (
    CATEGORY_THREAD_KEY,
    SUMMARY_THREAD_KEY,
    AiCategory,
    CacheEntry,
    CategoryResult,
    ClassifyBatchResult,
    InsightKind,
    InsightResult,
    SummaryResult,
)

__all__ = [
    "CATEGORY_THREAD_KEY",
    "SUMMARY_THREAD_KEY",
    "AiCategory",
    "CacheEntry",
    "CategoryResult",
    "ClassifyBatchResult",
    "InsightKind",
    "InsightResult",
    "SummaryResult",
]
