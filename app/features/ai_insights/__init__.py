"""
AI insights feature package: cached per-contact category and summary, plus
the batch that classifies every contact over repeated runs.
"""

from .api.router import router as ai_insights_router  # noqa: F401
from .services.classify_batch_service import ClassifyBatchService, classify_batch_service  # noqa: F401
from .services.insight_service import InsightService, insight_service  # noqa: F401
