"""Allergy Matcher.

Compares a proposed medication against a patient's documented allergies,
expanding the medication with the allergen families it belongs to.
"""

import logging
from typing import Iterable, List

from domain.prescription_safety_models import (
    AllergyRule,
    Finding,
    FindingType,
    MedicationRequest,
    Severity,
)

from .matching import matches_any, matching_terms

logger = logging.getLogger(__name__)


class AllergyMatcher:
    """Flags medications overlapping a documented allergy.

    The medication is known by its name, its generic name and the allergen
    of every allergy rule whose cross-reactive list it matches. Each allergy
    overlapping any of those terms produces one absolute finding.
    """

    source = "patient_allergies"

    def allergen_terms(
        self, medication: MedicationRequest, rules: Iterable[AllergyRule] = ()
    ) -> List[str]:
        """Names and allergen families the medication can be matched by."""
        terms = list(medication.terms)
        for rule in rules:
            if rule.allergen in terms:
                continue
            if any(matches_any(member, medication.terms) for member in rule.cross_reactive):
                terms.append(rule.allergen)
        return terms

    def match(
        self,
        allergies: Iterable[str],
        medication: MedicationRequest,
        rules: Iterable[AllergyRule] = (),
    ) -> List[Finding]:
        """Return one absolute allergy finding per matching allergy."""
        findings: List[Finding] = []
        medication_name = medication.display_name
        terms = self.allergen_terms(medication, rules)

        for allergy in allergies:
            matched = matching_terms(allergy, terms)
            if not matched:
                continue

            description = (
                f"Patient has documented allergy to {allergy}. "
                f"Prescribing {medication_name} is contraindicated."
            )
            if not matching_terms(allergy, medication.terms):
                description += f" {medication_name} cross-reacts with {', '.join(matched)}."

            findings.append(
                Finding(
                    type=FindingType.ALLERGY,
                    severity=Severity.ABSOLUTE,
                    title="Known Allergy Contraindication",
                    description=description,
                    recommendation="Remove medication or verify safety",
                    source=self.source,
                    medications=(medication_name,),
                )
            )
            logger.debug(f"Allergy '{allergy}' matched {medication_name} via {matched}")

        return findings
