"""Civic query understanding and retrieval-augmented answer package."""

from .config import PipelineConfig, ProviderConfig, ResilienceConfig, RetrievalConfig
from .schemas import RAGInput, RouterInput
from .service import CivicAssistant

__all__ = [
    "CivicAssistant",
    "PipelineConfig",
    "ProviderConfig",
    "RAGInput",
    "ResilienceConfig",
    "RetrievalConfig",
    "RouterInput",
]
