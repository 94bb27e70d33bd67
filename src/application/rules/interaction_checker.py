"""Interaction Checker.

Evaluates pairwise interaction rules across the patient's current
medications and the proposed one, and flags proposed medications that
overlap something the patient already takes.
"""

import logging
from typing import Iterable, List, Sequence, Tuple

from domain.prescription_safety_models import (
    DOSAGE_OVERLAP_SOURCE,
    Finding,
    FindingType,
    InteractionRule,
    MedicationReference,
    MedicationRequest,
    Severity,
)

from .builtin_catalog import interaction_recommendation
from .matching import matches_any, terms_overlap
from .rule_catalog import RuleCatalog

logger = logging.getLogger(__name__)

# (display name, match terms, is the proposed medication)
_Candidate = Tuple[str, Tuple[str, ...], bool]


class InteractionChecker:
    """Checks drug-drug interaction rules.

    A rule fires when the combined medication list holds a match for both
    of its sides, carried by two different medications. Each rule fires at
    most once; rules are independent and never deduplicated against each
    other.
    """

    source = "drug_interactions"

    def check(
        self,
        current_medications: Iterable[MedicationReference],
        proposed: MedicationRequest,
        catalog: RuleCatalog,
    ) -> List[Finding]:
        """Return one finding per interaction rule that fires."""
        candidates = self._candidates(current_medications, proposed)
        findings: List[Finding] = []

        for rule in catalog.interaction_rules:
            finding = self._evaluate_rule(rule, candidates, proposed)
            if finding is not None:
                findings.append(finding)

        return findings

    def check_dosage_overlap(
        self,
        current_medications: Iterable[MedicationReference],
        proposed: MedicationRequest,
    ) -> List[Finding]:
        """Flag a proposed medication the patient may already be taking."""
        similar = [
            medication.name
            for medication in current_medications
            if any(terms_overlap(term, own) for term in medication.terms for own in proposed.terms)
        ]
        if not similar:
            return []

        return [
            Finding(
                type=FindingType.DOSAGE_CONCERN,
                severity=Severity.CAUTION,
                title="Possible Duplicate Therapy",
                description=f"Patient may already be taking similar medication: {', '.join(similar)}",
                recommendation="Verify current medications and adjust dosing accordingly",
                source=DOSAGE_OVERLAP_SOURCE,
                medications=(proposed.display_name,) + tuple(similar),
                interacting_medication=", ".join(similar),
            )
        ]

    @staticmethod
    def _candidates(
        current_medications: Iterable[MedicationReference],
        proposed: MedicationRequest,
    ) -> List[_Candidate]:
        candidates: List[_Candidate] = [
            (medication.name, medication.terms, False) for medication in current_medications
        ]
        candidates.append((proposed.display_name, proposed.pattern_terms, True))
        return candidates

    def _evaluate_rule(
        self,
        rule: InteractionRule,
        candidates: Sequence[_Candidate],
        proposed: MedicationRequest,
    ):
        side_a = [index for index, (_, terms, _) in enumerate(candidates) if matches_any(rule.drug_a, terms)]
        if not side_a:
            return None
        side_b = [index for index, (_, terms, _) in enumerate(candidates) if matches_any(rule.drug_b, terms)]
        if not side_b:
            return None

        # Both sides must be carried by two distinct medications.
        if not any(a != b for a in side_a for b in side_b):
            return None

        involved: List[int] = []
        for index in side_a + side_b:
            if index not in involved:
                involved.append(index)

        names = tuple(candidates[index][0] for index in involved)
        others = [candidates[index][0] for index in involved if not candidates[index][2]]
        involves_proposed = any(candidates[index][2] for index in involved)

        if involves_proposed:
            description = f"{proposed.display_name} may interact with {', '.join(others)}. {rule.message}"
        else:
            description = f"Current medications {', '.join(names)} interact. {rule.message}"

        logger.debug(f"Interaction rule {rule.rule_id} fired for {names}")

        return Finding(
            type=FindingType.DRUG_INTERACTION,
            severity=rule.severity,
            title="Drug-Drug Interaction",
            description=description,
            recommendation=rule.action or interaction_recommendation(rule.severity),
            source=self.source,
            medications=names,
            interacting_medication=", ".join(others) if others else None,
            rule_id=rule.rule_id,
        )
