"""Prescription Safety Rules Package.

Provides rule-based safety evaluation for proposed prescriptions.
"""

from .allergy_matcher import AllergyMatcher
from .authorization_gate import (
    AuthorizationGate,
    AuthorizationGateConfig,
    AuthorizationWorkflow,
)
from .builtin_catalog import build_default_catalog
from .contraindication_evaluator import ContraindicationEvaluator
from .interaction_checker import InteractionChecker
from .recommendation_policy import RecommendationPolicy
from .rule_catalog import (
    RuleCatalog,
    RuleCatalogRegistry,
    catalog_from_dict,
    load_catalog,
)
from .safety_engine import (
    PrescriptionSafetyEngine,
    SafetyEngineConfig,
    evaluate,
)

__all__ = [
    "AllergyMatcher",
    "AuthorizationGate",
    "AuthorizationGateConfig",
    "AuthorizationWorkflow",
    "build_default_catalog",
    "ContraindicationEvaluator",
    "InteractionChecker",
    "RecommendationPolicy",
    "RuleCatalog",
    "RuleCatalogRegistry",
    "catalog_from_dict",
    "load_catalog",
    "PrescriptionSafetyEngine",
    "SafetyEngineConfig",
    "evaluate",
]
