"""Recommendation Policy.

Folds the findings of all checkers into one EvaluationResult with a
deterministic recommended action.
"""

import logging
from typing import Iterable, Optional, Sequence

from domain.prescription_safety_models import (
    DOSAGE_OVERLAP_SOURCE,
    EvaluationResult,
    Finding,
    FindingType,
    RecommendedAction,
    Severity,
)

logger = logging.getLogger(__name__)

_ACTION_BY_SEVERITY = {
    Severity.ABSOLUTE: RecommendedAction.DO_NOT_PRESCRIBE,
    Severity.RELATIVE: RecommendedAction.USE_WITH_EXTREME_CAUTION,
    Severity.WARNING: RecommendedAction.MONITOR_CLOSELY,
}


class RecommendationPolicy:
    """Aggregates findings into an EvaluationResult.

    The recommended action depends only on the highest severity present:

        absolute      -> DO_NOT_PRESCRIBE
        relative      -> USE_WITH_EXTREME_CAUTION
        warning       -> MONITOR_CLOSELY
        caution only  -> MONITOR_CLOSELY with a dosage overlap, else SAFE_TO_PRESCRIBE
        no findings   -> SAFE_TO_PRESCRIBE

    Internal faults produce MANUAL_REVIEW_REQUIRED, never SAFE_TO_PRESCRIBE.
    """

    def aggregate(
        self,
        findings: Iterable[Finding],
        patient_id: Optional[str] = None,
        medication_name: Optional[str] = None,
        catalog_version: Optional[str] = None,
    ) -> EvaluationResult:
        """Sort findings and compute the verdict. Never raises."""
        try:
            ordered = self.sort_findings(list(findings))
            return EvaluationResult(
                findings=ordered,
                has_absolute_contraindication=any(
                    f.severity == Severity.ABSOLUTE for f in ordered
                ),
                recommended_action=self.recommended_action(ordered),
                patient_id=patient_id,
                medication_name=medication_name,
                catalog_version=catalog_version,
            )
        except Exception as e:
            logger.error(f"Aggregation failed for patient {patient_id}: {e}", exc_info=True)
            return self.fault_result(
                (),
                e,
                patient_id=patient_id,
                medication_name=medication_name,
                catalog_version=catalog_version,
            )

    @staticmethod
    def sort_findings(findings: Sequence[Finding]) -> tuple:
        """Descending severity; stable within a severity band."""
        return tuple(sorted(findings, key=lambda f: -f.severity.rank))

    @staticmethod
    def recommended_action(findings: Sequence[Finding]) -> RecommendedAction:
        """Verdict for findings already known to be fault-free."""
        if not findings:
            return RecommendedAction.SAFE_TO_PRESCRIBE

        highest = max(f.severity for f in findings)
        if highest in _ACTION_BY_SEVERITY:
            return _ACTION_BY_SEVERITY[highest]

        if any(f.source == DOSAGE_OVERLAP_SOURCE for f in findings):
            return RecommendedAction.MONITOR_CLOSELY
        return RecommendedAction.SAFE_TO_PRESCRIBE

    def fault_result(
        self,
        partial_findings: Iterable[Finding],
        error: BaseException,
        patient_id: Optional[str] = None,
        medication_name: Optional[str] = None,
        catalog_version: Optional[str] = None,
    ) -> EvaluationResult:
        """Synthetic MANUAL_REVIEW_REQUIRED result for an internal fault.

        Findings gathered before the fault are kept so an absolute
        contraindication still requires an override at the gate.
        """
        message = f"{type(error).__name__}: {error}"
        fault_finding = Finding(
            type=FindingType.EVALUATION_FAULT,
            severity=Severity.WARNING,
            title="Safety Evaluation Incomplete",
            description=f"The safety evaluation could not be completed ({message}).",
            recommendation="Manually review allergies, interactions and contraindications",
            source="safety_engine",
            medications=(medication_name,) if medication_name else (),
        )

        partial = list(partial_findings)
        try:
            ordered = self.sort_findings(partial + [fault_finding])
        except Exception:
            ordered = (fault_finding,)

        return EvaluationResult(
            findings=ordered,
            has_absolute_contraindication=any(
                getattr(f, "severity", None) == Severity.ABSOLUTE for f in ordered
            ),
            recommended_action=RecommendedAction.MANUAL_REVIEW_REQUIRED,
            patient_id=patient_id,
            medication_name=medication_name,
            catalog_version=catalog_version,
            fault=message,
        )
