from .classify_state_repository import ClassifyStateRepository
from .insight_repository import InsightRepository

__all__ = ["ClassifyStateRepository", "InsightRepository"]
