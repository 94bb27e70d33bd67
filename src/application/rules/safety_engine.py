"""Prescription Safety Engine.

Runs the safety checkers against a rule catalog and folds their findings
into an EvaluationResult:

- Allergies (allergy + proposed medication -> absolute finding)
- Drug interactions (current + proposed medications -> interaction finding)
- Dosage overlap (proposed medication already taken -> caution finding)
- Contraindications (condition / age / pregnancy / organ -> finding)

Evaluation is pure over its inputs: the same patient, medication and
catalog always yield an identical result.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, List, Optional

from domain.prescription_safety_models import (
    EvaluationResult,
    Finding,
    MedicationRequest,
    PatientContext,
    RuleCatalogError,
)

from .allergy_matcher import AllergyMatcher
from .contraindication_evaluator import ContraindicationEvaluator
from .interaction_checker import InteractionChecker
from .recommendation_policy import RecommendationPolicy
from .rule_catalog import RuleCatalog, RuleCatalogRegistry

logger = logging.getLogger(__name__)


@dataclass
class SafetyEngineConfig:
    """Configuration for the Prescription Safety Engine."""

    # Flag proposed medications that overlap a current medication
    enable_dosage_overlap_check: bool = True


class PrescriptionSafetyEngine:
    """Evaluates a proposed prescription against a patient snapshot.

    Example:
        >>> engine = PrescriptionSafetyEngine()
        >>> patient = PatientContext(patient_id="patient:123", allergies=("sulfa",))
        >>> result = engine.evaluate(
        ...     patient, MedicationRequest(name="Sulfamethoxazole"), build_default_catalog()
        ... )
        >>> result.recommended_action
        <RecommendedAction.DO_NOT_PRESCRIBE: 'DO_NOT_PRESCRIBE'>
    """

    def __init__(
        self,
        config: Optional[SafetyEngineConfig] = None,
        registry: Optional[RuleCatalogRegistry] = None,
        allergy_matcher: Optional[AllergyMatcher] = None,
        interaction_checker: Optional[InteractionChecker] = None,
        contraindication_evaluator: Optional[ContraindicationEvaluator] = None,
        policy: Optional[RecommendationPolicy] = None,
    ):
        """Initialize the engine.

        Args:
            config: Optional configuration
            registry: Catalog registry used when evaluate() gets no catalog
            allergy_matcher: Allergy checker (default AllergyMatcher)
            interaction_checker: Interaction checker (default InteractionChecker)
            contraindication_evaluator: Contraindication checker
            policy: Aggregation policy
        """
        self.config = config or SafetyEngineConfig()
        self.registry = registry
        self.allergy_matcher = allergy_matcher or AllergyMatcher()
        self.interaction_checker = interaction_checker or InteractionChecker()
        self.contraindication_evaluator = contraindication_evaluator or ContraindicationEvaluator()
        self.policy = policy or RecommendationPolicy()

        self._stats_lock = Lock()
        self._stats: Counter = Counter()

    def _resolve_catalog(self, catalog: Optional[RuleCatalog]) -> RuleCatalog:
        if catalog is not None:
            return catalog
        if self.registry is not None:
            return self.registry.current()
        raise RuleCatalogError("No rule catalog supplied; refusing to evaluate")

    def evaluate(
        self,
        patient: PatientContext,
        medication: MedicationRequest,
        catalog: Optional[RuleCatalog] = None,
    ) -> EvaluationResult:
        """Evaluate a proposed medication for a patient.

        Args:
            patient: Validated patient snapshot
            medication: Proposed medication
            catalog: Rule catalog; the registry's current catalog when omitted

        Returns:
            EvaluationResult. Internal faults yield MANUAL_REVIEW_REQUIRED.

        Raises:
            RuleCatalogError: If no catalog is available (fail closed)
        """
        catalog = self._resolve_catalog(catalog)

        patient_id = getattr(patient, "patient_id", None)
        medication_name = getattr(medication, "name", None)
        findings: List[Finding] = []

        try:
            patient.validate()
            medication.validate()

            findings.extend(
                self.allergy_matcher.match(patient.allergies, medication, catalog.allergy_rules)
            )
            findings.extend(
                self.interaction_checker.check(patient.current_medications, medication, catalog)
            )
            if self.config.enable_dosage_overlap_check:
                findings.extend(
                    self.interaction_checker.check_dosage_overlap(
                        patient.current_medications, medication
                    )
                )
            findings.extend(self.contraindication_evaluator.evaluate(patient, medication, catalog))
        except Exception as e:
            logger.error(
                f"Safety evaluation fault for patient {patient_id} / {medication_name}: {e}",
                exc_info=True,
            )
            result = self.policy.fault_result(
                findings,
                e,
                patient_id=patient_id,
                medication_name=medication_name,
                catalog_version=catalog.version,
            )
            self._record(result)
            return result

        result = self.policy.aggregate(
            findings,
            patient_id=patient_id,
            medication_name=medication_name,
            catalog_version=catalog.version,
        )
        self._record(result)

        logger.info(
            f"Evaluated {medication_name} for patient {patient_id} against catalog "
            f"{catalog.version}: {len(result.findings)} findings, {result.recommended_action.value}"
        )
        return result

    def _record(self, result: EvaluationResult) -> None:
        with self._stats_lock:
            self._stats["total_evaluations"] += 1
            self._stats[f"action:{result.recommended_action.value}"] += 1
            if result.is_fault:
                self._stats["faults"] += 1

    def get_statistics(self) -> Dict[str, Any]:
        """Get engine statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        return {
            "total_evaluations": stats.get("total_evaluations", 0),
            "faults": stats.get("faults", 0),
            "by_action": {
                key.split(":", 1)[1]: count
                for key, count in stats.items()
                if key.startswith("action:")
            },
            "catalog": self.registry.current().describe()
            if self.registry is not None and self.registry.is_loaded
            else None,
            "config": {
                "enable_dosage_overlap_check": self.config.enable_dosage_overlap_check,
            },
        }


def evaluate(
    patient: PatientContext,
    medication: MedicationRequest,
    catalog: RuleCatalog,
) -> EvaluationResult:
    """Evaluate with a default engine."""
    return PrescriptionSafetyEngine().evaluate(patient, medication, catalog)
