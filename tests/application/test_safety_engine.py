"""Tests for the recommendation policy and the prescription safety engine.

Includes the clinical acceptance scenarios (allergy, PDE5 interaction,
pregnancy, unrelated renal condition) and the determinism, monotonicity
and fail-closed properties.
"""

import random
from unittest.mock import MagicMock

import pytest

from application.rules.builtin_catalog import build_default_catalog
from application.rules.recommendation_policy import RecommendationPolicy
from application.rules.rule_catalog import RuleCatalog, RuleCatalogRegistry
from application.rules.safety_engine import PrescriptionSafetyEngine, SafetyEngineConfig, evaluate
from domain.prescription_safety_models import (
    DOSAGE_OVERLAP_SOURCE,
    AllergyRule,
    Finding,
    FindingType,
    InteractionRule,
    MedicationRequest,
    PatientContext,
    RecommendedAction,
    RuleCatalogError,
    Severity,
)


def _finding(severity, source="test", title="t"):
    return Finding(
        type=FindingType.DRUG_INTERACTION,
        severity=severity,
        title=title,
        description="d",
        recommendation="r",
        source=source,
    )


@pytest.fixture
def catalog():
    return build_default_catalog()


@pytest.fixture
def engine():
    return PrescriptionSafetyEngine()


# ========================================
# Recommendation Policy
# ========================================

class TestRecommendationPolicy:
    """Tests for RecommendationPolicy."""

    @pytest.mark.parametrize("severities,expected", [
        ([], RecommendedAction.SAFE_TO_PRESCRIBE),
        ([Severity.CAUTION], RecommendedAction.SAFE_TO_PRESCRIBE),
        ([Severity.CAUTION, Severity.WARNING], RecommendedAction.MONITOR_CLOSELY),
        ([Severity.RELATIVE, Severity.CAUTION], RecommendedAction.USE_WITH_EXTREME_CAUTION),
        ([Severity.WARNING, Severity.ABSOLUTE], RecommendedAction.DO_NOT_PRESCRIBE),
    ])
    def test_action_by_highest_severity(self, severities, expected):
        result = RecommendationPolicy().aggregate([_finding(s) for s in severities])

        assert result.recommended_action == expected
        assert result.has_absolute_contraindication == (Severity.ABSOLUTE in severities)

    def test_caution_dosage_overlap_means_monitor(self):
        findings = [_finding(Severity.CAUTION, source=DOSAGE_OVERLAP_SOURCE)]
        result = RecommendationPolicy().aggregate(findings)

        assert result.recommended_action == RecommendedAction.MONITOR_CLOSELY

    def test_sorted_by_descending_severity_and_stable(self):
        findings = [
            _finding(Severity.CAUTION, title="c1"),
            _finding(Severity.ABSOLUTE, title="a1"),
            _finding(Severity.CAUTION, title="c2"),
            _finding(Severity.RELATIVE, title="r1"),
            _finding(Severity.ABSOLUTE, title="a2"),
        ]
        result = RecommendationPolicy().aggregate(findings)

        assert [f.title for f in result.findings] == ["a1", "a2", "r1", "c1", "c2"]

    def test_fault_result_keeps_partial_findings(self):
        partial = [_finding(Severity.ABSOLUTE, title="allergy")]
        result = RecommendationPolicy().fault_result(partial, RuntimeError("boom"), medication_name="X")

        assert result.recommended_action == RecommendedAction.MANUAL_REVIEW_REQUIRED
        assert result.has_absolute_contraindication
        assert result.fault == "RuntimeError: boom"
        assert result.findings[0].title == "allergy"
        assert result.findings_of(FindingType.EVALUATION_FAULT)

    def test_aggregate_never_raises(self):
        result = RecommendationPolicy().aggregate([object()])

        assert result.recommended_action == RecommendedAction.MANUAL_REVIEW_REQUIRED
        assert result.is_fault


# ========================================
# Acceptance Scenarios
# ========================================

class TestScenarios:
    """Clinical acceptance scenarios against the built-in catalog."""

    def test_sulfa_allergy(self, engine, catalog):
        patient = PatientContext(patient_id="patient:a", allergies=["sulfa"])
        result = engine.evaluate(patient, MedicationRequest(name="Sulfamethoxazole"), catalog)

        assert len(result.findings) == 1
        assert result.findings[0].type == FindingType.ALLERGY
        assert result.findings[0].severity == Severity.ABSOLUTE
        assert result.recommended_action == RecommendedAction.DO_NOT_PRESCRIBE
        assert result.has_absolute_contraindication

    def test_penicillin_allergy_catches_amoxicillin(self, engine, catalog):
        patient = PatientContext(patient_id="patient:a2", allergies=["penicillin"])
        result = engine.evaluate(patient, MedicationRequest(name="Amoxicillin"), catalog)

        assert len(result.findings) == 1
        assert result.findings[0].type == FindingType.ALLERGY
        assert "cross-reacts with penicillin" in result.findings[0].description
        assert result.recommended_action == RecommendedAction.DO_NOT_PRESCRIBE

    def test_nsaid_allergy_catches_ibuprofen(self, engine, catalog):
        patient = PatientContext(patient_id="patient:a3", allergies=["NSAIDs"])
        result = engine.evaluate(patient, MedicationRequest(name="Ibuprofen 400mg"), catalog)

        assert result.has_absolute_contraindication
        assert result.recommended_action == RecommendedAction.DO_NOT_PRESCRIBE

    def test_unrelated_allergy_family(self, engine, catalog):
        patient = PatientContext(patient_id="patient:a4", allergies=["opioid"])
        result = engine.evaluate(patient, MedicationRequest(name="Amoxicillin"), catalog)

        assert result.recommended_action == RecommendedAction.SAFE_TO_PRESCRIBE

    def test_pde5_inhibitor_conflict(self, engine, catalog):
        patient = PatientContext(patient_id="patient:b", current_medications=["Sildenafil"])
        result = engine.evaluate(patient, MedicationRequest(name="Tadalafil"), catalog)

        assert len(result.findings) == 1
        assert result.findings[0].type == FindingType.DRUG_INTERACTION
        assert result.recommended_action == RecommendedAction.USE_WITH_EXTREME_CAUTION

    def test_pregnancy_absolute(self, engine, catalog):
        patient = PatientContext(patient_id="patient:c", is_pregnant=True)
        result = engine.evaluate(patient, MedicationRequest(name="Warfarin"), catalog)

        assert result.has_absolute_contraindication
        assert result.findings[0].type == FindingType.PREGNANCY_CONTRAINDICATION
        assert result.recommended_action == RecommendedAction.DO_NOT_PRESCRIBE

    def test_renal_condition_without_matching_rule(self, engine, catalog):
        patient = PatientContext(patient_id="patient:d", conditions=["renal failure"])
        result = engine.evaluate(patient, MedicationRequest(name="Lisinopril"), catalog)

        assert not result.findings_of(FindingType.MEDICAL_CONDITION)
        assert not result.findings_of(FindingType.RENAL_CONTRAINDICATION)
        assert result.recommended_action == RecommendedAction.SAFE_TO_PRESCRIBE

    def test_dosage_overlap_means_monitor(self, engine, catalog):
        patient = PatientContext(patient_id="patient:e", current_medications=["Lisinopril 10mg"])
        result = engine.evaluate(patient, MedicationRequest(name="Lisinopril"), catalog)

        assert result.findings_of(FindingType.DOSAGE_CONCERN)
        assert result.recommended_action == RecommendedAction.MONITOR_CLOSELY

    def test_dosage_overlap_can_be_disabled(self, catalog):
        engine = PrescriptionSafetyEngine(SafetyEngineConfig(enable_dosage_overlap_check=False))
        patient = PatientContext(patient_id="patient:e", current_medications=["Lisinopril 10mg"])
        result = engine.evaluate(patient, MedicationRequest(name="Lisinopril"), catalog)

        assert result.findings == ()
        assert result.recommended_action == RecommendedAction.SAFE_TO_PRESCRIBE


# ========================================
# Properties
# ========================================

class TestEngineProperties:
    """Determinism, baseline and monotonicity."""

    def test_empty_baseline(self, engine, catalog):
        patient = PatientContext(patient_id="patient:empty")
        result = engine.evaluate(patient, MedicationRequest(name="Amoxicillin"), catalog)

        assert result.recommended_action == RecommendedAction.SAFE_TO_PRESCRIBE
        assert not result.has_absolute_contraindication

    def test_deterministic(self, engine, catalog):
        patient = PatientContext(
            patient_id="patient:det",
            allergies=["aspirin"],
            current_medications=["Warfarin", "Lasix"],
            conditions=["peptic ulcer", "asthma"],
            age=70,
        )
        medication = MedicationRequest(name="Aspirin", drug_class="nsaid")

        first = engine.evaluate(patient, medication, catalog)
        second = engine.evaluate(patient, medication, catalog)

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_adding_a_finding_never_lowers_severity(self, engine, catalog):
        rng = random.Random(7)
        medications = ["Aspirin", "Warfarin", "Metformin", "Ibuprofen", "Tadalafil", "Lisinopril"]
        conditions = ["asthma", "heart failure", "kidney disease", "peptic ulcer", "liver disease"]

        for _ in range(50):
            base = PatientContext(
                patient_id="patient:mono",
                current_medications=rng.sample(medications, 2),
                conditions=rng.sample(conditions, 1),
                age=rng.choice([None, 10, 40, 80]),
            )
            richer = PatientContext(
                patient_id="patient:mono",
                allergies=["sulfa"],
                current_medications=base.current_medications,
                conditions=base.conditions + tuple(rng.sample(conditions, 2)),
                age=base.age,
            )
            medication = MedicationRequest(name=rng.choice(medications))

            before = engine.evaluate(base, medication, catalog)
            after = engine.evaluate(richer, medication, catalog)

            if before.max_severity is not None:
                assert after.max_severity is not None
                assert after.max_severity >= before.max_severity
            assert not (before.has_absolute_contraindication and not after.has_absolute_contraindication)

    def test_extra_catalog_rule_only_adds(self, engine, catalog):
        patient = PatientContext(patient_id="patient:x", current_medications=["Amlodipine"])
        medication = MedicationRequest(name="Simvastatin")
        extra = InteractionRule("DI900", "amlodipine", "simvastatin", Severity.WARNING, "Myopathy risk")

        before = engine.evaluate(patient, medication, catalog)
        after = engine.evaluate(patient, medication, catalog.with_rules([extra]))

        assert len(after.findings) == len(before.findings) + 1
        assert after.recommended_action == RecommendedAction.MONITOR_CLOSELY


# ========================================
# Faults & Catalog Resolution
# ========================================

class TestEngineFaults:
    """Fail-closed and fault handling."""

    def test_no_catalog_raises(self, engine):
        with pytest.raises(RuleCatalogError):
            engine.evaluate(PatientContext(patient_id="p"), MedicationRequest(name="Aspirin"))

    def test_empty_registry_raises(self):
        engine = PrescriptionSafetyEngine(registry=RuleCatalogRegistry())

        with pytest.raises(RuleCatalogError):
            engine.evaluate(PatientContext(patient_id="p"), MedicationRequest(name="Aspirin"))

    def test_registry_catalog_used(self, catalog):
        engine = PrescriptionSafetyEngine(registry=RuleCatalogRegistry(catalog))
        result = engine.evaluate(PatientContext(patient_id="p"), MedicationRequest(name="Aspirin"))

        assert result.catalog_version == catalog.version

    def test_checker_fault_becomes_manual_review(self, catalog):
        broken = MagicMock()
        broken.evaluate.side_effect = RuntimeError("rule table corrupted")
        engine = PrescriptionSafetyEngine(contraindication_evaluator=broken)
        patient = PatientContext(patient_id="p", allergies=["sulfa"])

        result = engine.evaluate(patient, MedicationRequest(name="Sulfamethoxazole"), catalog)

        assert result.recommended_action == RecommendedAction.MANUAL_REVIEW_REQUIRED
        assert result.recommended_action != RecommendedAction.SAFE_TO_PRESCRIBE
        assert result.has_absolute_contraindication  # allergy found before the fault
        assert "rule table corrupted" in result.fault

    def test_statistics(self, catalog):
        engine = PrescriptionSafetyEngine(registry=RuleCatalogRegistry(catalog))
        engine.evaluate(PatientContext(patient_id="p"), MedicationRequest(name="Amoxicillin"))
        engine.evaluate(PatientContext(patient_id="p", allergies=["sulfa"]), MedicationRequest(name="Sulfa"))

        stats = engine.get_statistics()
        assert stats["total_evaluations"] == 2
        assert stats["by_action"] == {"SAFE_TO_PRESCRIBE": 1, "DO_NOT_PRESCRIBE": 1}
        assert stats["catalog"]["version"] == catalog.version

    def test_module_level_evaluate(self):
        catalog = RuleCatalog(
            version="only-allergy",
            rules=(AllergyRule("AL001", "penicillin", ("amoxicillin",)),),
        )
        result = evaluate(
            PatientContext(patient_id="p", allergies=["penicillin"]),
            MedicationRequest(name="Amoxicillin"),
            catalog,
        )
        assert result.recommended_action == RecommendedAction.DO_NOT_PRESCRIBE
