"""
Generation adapters: advisor catalog, advice panel, follow-up dialogue
"""

from .catalog import AdvisorCatalogService, AdvisorPool, load_advisor_pool
from .dialogue import DialogueContinuationService
from .llm_client import StructuredGenerator, build_generator
from .panel import AdvicePanelService

__all__ = [
    "AdvisorCatalogService",
    "AdvisorPool",
    "load_advisor_pool",
    "AdvicePanelService",
    "DialogueContinuationService",
    "StructuredGenerator",
    "build_generator",
]
