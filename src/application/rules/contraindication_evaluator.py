"""Contraindication Evaluator.

Evaluates condition, age, pregnancy and organ-impairment rules against the
patient profile. Unknown profile data never silently passes a serious rule:
it degrades to a lower-severity finding asking the provider to confirm.
"""

import logging
from typing import List, Optional

from domain.prescription_safety_models import (
    AgeRule,
    ConditionRule,
    Finding,
    FindingType,
    MedicationRequest,
    Organ,
    OrganImpairmentRule,
    PatientContext,
    PregnancyRule,
    Rule,
    Severity,
)

from .builtin_catalog import condition_recommendation
from .matching import matches_any, normalize_term
from .rule_catalog import RuleCatalog

logger = logging.getLogger(__name__)

_ORGAN_FINDING_TYPES = {
    Organ.RENAL: FindingType.RENAL_CONTRAINDICATION,
    Organ.HEPATIC: FindingType.HEPATIC_CONTRAINDICATION,
}


class ContraindicationEvaluator:
    """Evaluates patient-profile contraindication rules.

    Rule kinds are evaluated in a fixed order (condition, age, pregnancy,
    organ impairment) and, within a kind, in catalog order.
    """

    def evaluate(
        self,
        patient: PatientContext,
        proposed: MedicationRequest,
        catalog: RuleCatalog,
    ) -> List[Finding]:
        """Return findings for every contraindication rule that applies."""
        findings: List[Finding] = []

        for rule in catalog.condition_rules:
            if self._applies_to(rule, proposed):
                finding = self._evaluate_condition(rule, patient, proposed)
                if finding:
                    findings.append(finding)

        for rule in catalog.age_rules:
            if self._applies_to(rule, proposed):
                finding = self._evaluate_age(rule, patient, proposed)
                if finding:
                    findings.append(finding)

        for rule in catalog.pregnancy_rules:
            if self._applies_to(rule, proposed):
                finding = self._evaluate_pregnancy(rule, patient, proposed)
                if finding:
                    findings.append(finding)

        for rule in catalog.organ_rules:
            if self._applies_to(rule, proposed):
                finding = self._evaluate_organ(rule, patient, proposed)
                if finding:
                    findings.append(finding)

        return findings

    @staticmethod
    def _applies_to(rule: Rule, proposed: MedicationRequest) -> bool:
        return matches_any(rule.medication_pattern, proposed.pattern_terms)

    # ----------------------------------------
    # Condition
    # ----------------------------------------

    def _evaluate_condition(
        self,
        rule: ConditionRule,
        patient: PatientContext,
        proposed: MedicationRequest,
    ) -> Optional[Finding]:
        wanted = normalize_term(rule.condition)
        condition = next((c for c in patient.conditions if normalize_term(c) == wanted), None)
        if condition is None:
            return None

        return Finding(
            type=FindingType.MEDICAL_CONDITION,
            severity=rule.severity,
            title=f"{condition} Contraindication",
            description=f"Patient has {condition}. {rule.message}",
            recommendation=rule.recommendation or condition_recommendation(rule.severity, condition),
            source="medical_history",
            medications=(proposed.display_name,),
            condition=condition,
            rule_id=rule.rule_id,
        )

    # ----------------------------------------
    # Age
    # ----------------------------------------

    def _evaluate_age(
        self,
        rule: AgeRule,
        patient: PatientContext,
        proposed: MedicationRequest,
    ) -> Optional[Finding]:
        name = proposed.display_name

        if patient.age is None:
            if rule.severity != Severity.ABSOLUTE:
                return None
            return Finding(
                type=FindingType.AGE_CONTRAINDICATION,
                severity=Severity.CAUTION,
                title="Patient Age Unknown",
                description=(
                    f"{name} has an age restriction ({_describe_range(rule)}). {rule.message}. "
                    f"Patient age is not recorded."
                ),
                recommendation="Verify patient age manually before prescribing",
                source="age_restrictions",
                medications=(name,),
                rule_id=rule.rule_id,
            )

        if rule.allows(patient.age):
            return None

        if rule.max_age is not None and patient.age > rule.max_age:
            return Finding(
                type=FindingType.GERIATRIC_CAUTION,
                severity=rule.severity,
                title="Geriatric Consideration",
                description=f"Special caution needed in patients over {rule.max_age}. {rule.message}",
                recommendation="Consider lower starting dose and close monitoring",
                source="geriatric_guidelines",
                medications=(name,),
                patient_age=patient.age,
                rule_id=rule.rule_id,
            )

        return Finding(
            type=FindingType.AGE_CONTRAINDICATION,
            severity=rule.severity,
            title="Pediatric Contraindication",
            description=f"{name} is contraindicated in patients under {rule.min_age}. {rule.message}",
            recommendation="Consider age-appropriate alternatives",
            source="age_restrictions",
            medications=(name,),
            patient_age=patient.age,
            rule_id=rule.rule_id,
        )

    # ----------------------------------------
    # Pregnancy
    # ----------------------------------------

    def _evaluate_pregnancy(
        self,
        rule: PregnancyRule,
        patient: PatientContext,
        proposed: MedicationRequest,
    ) -> Optional[Finding]:
        if patient.is_pregnant is False:
            return None

        name = proposed.display_name
        title = (
            f"Pregnancy Category {rule.category}" if rule.category else "Pregnancy Contraindication"
        )

        if patient.is_pregnant is None:
            return Finding(
                type=FindingType.PREGNANCY_CONTRAINDICATION,
                severity=Severity.WARNING,
                title=f"{title} (pregnancy status unknown)",
                description=f"{name} carries a pregnancy restriction. {rule.message}",
                recommendation="Confirm pregnancy status before prescribing",
                source="pregnancy_categories",
                medications=(name,),
                rule_id=rule.rule_id,
            )

        return Finding(
            type=FindingType.PREGNANCY_CONTRAINDICATION,
            severity=rule.severity,
            title=title,
            description=f"{name} is restricted in pregnancy. {rule.message}",
            recommendation="Discuss pregnancy-safe alternatives",
            source="pregnancy_categories",
            medications=(name,),
            rule_id=rule.rule_id,
        )

    # ----------------------------------------
    # Organ impairment
    # ----------------------------------------

    def _evaluate_organ(
        self,
        rule: OrganImpairmentRule,
        patient: PatientContext,
        proposed: MedicationRequest,
    ) -> Optional[Finding]:
        impaired = patient.impairment(rule.organ)
        if impaired is False:
            return None

        name = proposed.display_name
        organ = rule.organ.value
        finding_type = _ORGAN_FINDING_TYPES[rule.organ]
        source = f"{organ}_guidelines"

        if impaired is None:
            return Finding(
                type=finding_type,
                severity=Severity.WARNING,
                title=f"{organ.capitalize()} Function Unknown",
                description=f"{name} requires {organ} function review. {rule.message}",
                recommendation=f"Confirm {organ} function before prescribing",
                source=source,
                medications=(name,),
                rule_id=rule.rule_id,
            )

        return Finding(
            type=finding_type,
            severity=rule.severity,
            title=f"{organ.capitalize()} Function Contraindication",
            description=f"Patient has {organ} impairment. {rule.message}",
            recommendation="Consider dose adjustment or alternative medication",
            source=source,
            medications=(name,),
            rule_id=rule.rule_id,
        )


def _describe_range(rule: AgeRule) -> str:
    if rule.min_age is not None and rule.max_age is not None:
        return f"ages {rule.min_age}-{rule.max_age}"
    if rule.min_age is not None:
        return f"ages {rule.min_age} and over"
    return f"ages {rule.max_age} and under"
