"""Prescription Safety Domain Models.

Defines severity bands, rule types, findings and the evaluation/authorization
result values produced by the prescription safety engine.

All values here are immutable snapshots: a PatientContext or
MedicationRequest is validated once on construction and never changes for
the duration of an evaluation, and results are fresh values per call.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple, Union
from uuid import uuid4


# ========================================
# Errors
# ========================================

class PrescriptionSafetyError(Exception):
    """Base class for prescription safety errors."""


class ValidationError(PrescriptionSafetyError):
    """Malformed patient snapshot or medication request."""


class RuleCatalogError(PrescriptionSafetyError):
    """Rule catalog could not be loaded or is unavailable."""


class EvaluationFault(PrescriptionSafetyError):
    """Unexpected internal error while running the checkers."""


class InvalidTransitionError(PrescriptionSafetyError):
    """Illegal authorization workflow state transition."""


# ========================================
# Enums
# ========================================

_SEVERITY_RANK = {
    "caution": 0,
    "warning": 1,
    "relative": 2,
    "absolute": 3,
}


class Severity(str, Enum):
    """Severity band for a finding, ordered by clinical risk."""

    CAUTION = "caution"      # Consider alternatives
    WARNING = "warning"      # Monitor closely
    RELATIVE = "relative"    # Use with extreme caution
    ABSOLUTE = "absolute"    # Never prescribe without override

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class FindingType(str, Enum):
    """Kind of safety finding."""

    ALLERGY = "allergy"
    DRUG_INTERACTION = "drug_interaction"
    DOSAGE_CONCERN = "dosage_concern"
    MEDICAL_CONDITION = "medical_condition"
    AGE_CONTRAINDICATION = "age_contraindication"
    GERIATRIC_CAUTION = "geriatric_caution"
    PREGNANCY_CONTRAINDICATION = "pregnancy_contraindication"
    RENAL_CONTRAINDICATION = "renal_contraindication"
    HEPATIC_CONTRAINDICATION = "hepatic_contraindication"
    EVALUATION_FAULT = "evaluation_fault"


class RecommendedAction(str, Enum):
    """Aggregated verdict for a proposed prescription."""

    SAFE_TO_PRESCRIBE = "SAFE_TO_PRESCRIBE"
    MONITOR_CLOSELY = "MONITOR_CLOSELY"
    USE_WITH_EXTREME_CAUTION = "USE_WITH_EXTREME_CAUTION"
    MANUAL_REVIEW_REQUIRED = "MANUAL_REVIEW_REQUIRED"
    DO_NOT_PRESCRIBE = "DO_NOT_PRESCRIBE"


class MedicationCategory(str, Enum):
    """Regulatory category of a medication."""

    STANDARD = "standard"
    CONTROLLED = "controlled"


class Organ(str, Enum):
    """Organ systems covered by impairment rules."""

    RENAL = "renal"
    HEPATIC = "hepatic"


class AuthorizationState(str, Enum):
    """Lifecycle of one prescription authorization attempt."""

    PENDING_EVALUATION = "PENDING_EVALUATION"
    EVALUATED = "EVALUATED"
    AUTHORIZED = "AUTHORIZED"
    DENIED = "DENIED"


# Source tag used by the dosage overlap check; the policy keys on it.
DOSAGE_OVERLAP_SOURCE = "dosage_overlap"


# ========================================
# Patient & Medication
# ========================================

def _normalize_entries(values: Optional[Iterable[str]], label: str) -> Tuple[str, ...]:
    """Strip entries, drop blanks and duplicates, keep caller order."""
    if values is None:
        return ()
    if isinstance(values, str):
        raise ValidationError(f"{label} must be a collection of strings, not a string")

    seen = set()
    normalized = []
    for value in values:
        if not isinstance(value, str):
            raise ValidationError(f"{label} entries must be strings, got {type(value).__name__}")
        cleaned = " ".join(value.split())
        key = cleaned.lower()
        if cleaned and key not in seen:
            seen.add(key)
            normalized.append(cleaned)
    return tuple(normalized)


def _check_tri_state(value: Any, label: str) -> None:
    if value is not None and not isinstance(value, bool):
        raise ValidationError(f"{label} must be True, False or None (unknown)")


@dataclass(frozen=True)
class MedicationReference:
    """A medication the patient is currently taking."""

    name: str
    generic_name: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Medication reference requires a name")
        if self.generic_name is not None and not isinstance(self.generic_name, str):
            raise ValidationError("Medication generic name must be a string")

    @property
    def terms(self) -> Tuple[str, ...]:
        """Names this medication can be matched by."""
        if self.generic_name and self.generic_name.strip():
            return (self.name, self.generic_name)
        return (self.name,)


@dataclass(frozen=True)
class PatientContext:
    """Immutable clinical snapshot of a patient for one evaluation.

    Attributes:
        patient_id: Patient identifier
        allergies: Documented allergies
        current_medications: Medications the patient currently takes
        conditions: Known conditions/diagnoses
        age: Age in years, None when unknown
        is_pregnant: True/False, None when unknown
        renal_impairment: True/False, None when unknown
        hepatic_impairment: True/False, None when unknown
    """

    patient_id: str
    allergies: Tuple[str, ...] = ()
    current_medications: Tuple[MedicationReference, ...] = ()
    conditions: Tuple[str, ...] = ()
    age: Optional[int] = None
    is_pregnant: Optional[bool] = None
    renal_impairment: Optional[bool] = None
    hepatic_impairment: Optional[bool] = None

    def __post_init__(self):
        object.__setattr__(self, "allergies", _normalize_entries(self.allergies, "allergies"))
        object.__setattr__(self, "conditions", _normalize_entries(self.conditions, "conditions"))
        object.__setattr__(
            self,
            "current_medications",
            self._normalize_medications(self.current_medications),
        )
        self.validate()

    @staticmethod
    def _normalize_medications(values) -> Tuple[MedicationReference, ...]:
        if values is None:
            return ()
        if isinstance(values, (str, MedicationReference)):
            raise ValidationError("current_medications must be a collection")

        seen = set()
        medications = []
        for value in values:
            if isinstance(value, str):
                value = MedicationReference(name=value.strip())
            elif not isinstance(value, MedicationReference):
                raise ValidationError(
                    f"current_medications entries must be names or MedicationReference, "
                    f"got {type(value).__name__}"
                )
            key = (value.name.lower(), (value.generic_name or "").lower())
            if key not in seen:
                seen.add(key)
                medications.append(value)
        return tuple(medications)

    def validate(self) -> None:
        """Raise ValidationError if the snapshot is malformed."""
        if not isinstance(self.patient_id, str) or not self.patient_id.strip():
            raise ValidationError("Patient context requires a patient_id")
        if self.age is not None:
            if isinstance(self.age, bool) or not isinstance(self.age, int):
                raise ValidationError(f"Patient age must be an integer, got {self.age!r}")
            if self.age < 0:
                raise ValidationError(f"Patient age cannot be negative: {self.age}")
        _check_tri_state(self.is_pregnant, "is_pregnant")
        _check_tri_state(self.renal_impairment, "renal_impairment")
        _check_tri_state(self.hepatic_impairment, "hepatic_impairment")

    def impairment(self, organ: "Organ") -> Optional[bool]:
        """Tri-state impairment flag for an organ."""
        if organ == Organ.RENAL:
            return self.renal_impairment
        return self.hepatic_impairment


@dataclass(frozen=True)
class MedicationRequest:
    """Medication proposed for prescription."""

    name: str
    generic_name: Optional[str] = None
    category: MedicationCategory = MedicationCategory.STANDARD
    dosage: str = ""
    drug_class: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.category, str) and not isinstance(self.category, MedicationCategory):
            try:
                object.__setattr__(self, "category", MedicationCategory(self.category.strip().lower()))
            except ValueError:
                raise ValidationError(f"Unknown medication category: {self.category!r}")
        self.validate()

    def validate(self) -> None:
        """Raise ValidationError if the request is malformed."""
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Medication request requires a name")
        for label, value in (("generic_name", self.generic_name), ("drug_class", self.drug_class)):
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"Medication {label} must be a string")
        if not isinstance(self.dosage, str):
            raise ValidationError("Medication dosage must be a string")
        if not isinstance(self.category, MedicationCategory):
            raise ValidationError(f"Unknown medication category: {self.category!r}")

    @property
    def display_name(self) -> str:
        return self.name.strip()

    @property
    def terms(self) -> Tuple[str, ...]:
        """Names this medication can be matched by (name, generic name)."""
        terms = [self.name]
        if self.generic_name and self.generic_name.strip():
            terms.append(self.generic_name)
        return tuple(terms)

    @property
    def pattern_terms(self) -> Tuple[str, ...]:
        """Terms rule patterns are compared against, drug class included."""
        if self.drug_class and self.drug_class.strip():
            return self.terms + (self.drug_class,)
        return self.terms


# ========================================
# Rules
# ========================================

@dataclass(frozen=True)
class AllergyRule:
    """Allergen family.

    A medication matching any cross_reactive entry also counts as the
    allergen, so a documented "penicillin" allergy catches Amoxicillin.
    """

    rule_id: str
    allergen: str
    cross_reactive: Tuple[str, ...]
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "cross_reactive", tuple(self.cross_reactive))


@dataclass(frozen=True)
class InteractionRule:
    """Drug-drug interaction between two medications or classes."""

    rule_id: str
    drug_a: str
    drug_b: str
    severity: Severity
    message: str
    action: str = ""


@dataclass(frozen=True)
class ConditionRule:
    """Medication contraindicated by a medical condition."""

    rule_id: str
    condition: str
    medication_pattern: str
    severity: Severity
    message: str
    recommendation: str = ""


@dataclass(frozen=True)
class AgeRule:
    """Medication restricted to an age range (open bounds allowed)."""

    rule_id: str
    medication_pattern: str
    severity: Severity
    message: str
    min_age: Optional[int] = None
    max_age: Optional[int] = None

    def allows(self, age: int) -> bool:
        if self.min_age is not None and age < self.min_age:
            return False
        if self.max_age is not None and age > self.max_age:
            return False
        return True


@dataclass(frozen=True)
class PregnancyRule:
    """Medication contraindicated in pregnancy."""

    rule_id: str
    medication_pattern: str
    severity: Severity
    message: str
    category: Optional[str] = None


@dataclass(frozen=True)
class OrganImpairmentRule:
    """Medication contraindicated with renal or hepatic impairment."""

    rule_id: str
    organ: Organ
    medication_pattern: str
    severity: Severity
    message: str


Rule = Union[
    AllergyRule,
    InteractionRule,
    ConditionRule,
    AgeRule,
    PregnancyRule,
    OrganImpairmentRule,
]

RULE_KINDS: Dict[str, type] = {
    "allergy": AllergyRule,
    "interaction": InteractionRule,
    "condition": ConditionRule,
    "age": AgeRule,
    "pregnancy": PregnancyRule,
    "organ_impairment": OrganImpairmentRule,
}


def rule_kind(rule: Rule) -> str:
    """Catalog kind name of a rule instance."""
    for kind, rule_type in RULE_KINDS.items():
        if isinstance(rule, rule_type):
            return kind
    raise TypeError(f"Not a catalog rule: {type(rule).__name__}")


# ========================================
# Findings & Results
# ========================================

@dataclass(frozen=True)
class Finding:
    """A single safety concern raised by one of the checkers."""

    type: FindingType
    severity: Severity
    title: str
    description: str
    recommendation: str
    source: str
    medications: Tuple[str, ...] = ()
    interacting_medication: Optional[str] = None
    condition: Optional[str] = None
    patient_age: Optional[int] = None
    rule_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert finding to its JSON shape."""
        data: Dict[str, Any] = {
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "source": self.source,
            "medications": list(self.medications),
        }
        if self.interacting_medication is not None:
            data["interactingMedication"] = self.interacting_medication
        if self.condition is not None:
            data["condition"] = self.condition
        if self.patient_age is not None:
            data["patientAge"] = self.patient_age
        if self.rule_id is not None:
            data["ruleId"] = self.rule_id
        return data


@dataclass(frozen=True)
class EvaluationResult:
    """Aggregated outcome of one safety evaluation.

    Findings are ordered by descending severity; within a severity band
    they keep the order the checkers produced them in.
    """

    findings: Tuple[Finding, ...]
    has_absolute_contraindication: bool
    recommended_action: RecommendedAction
    patient_id: Optional[str] = None
    medication_name: Optional[str] = None
    catalog_version: Optional[str] = None
    fault: Optional[str] = None

    @property
    def max_severity(self) -> Optional[Severity]:
        if not self.findings:
            return None
        return max(f.severity for f in self.findings)

    @property
    def is_fault(self) -> bool:
        return self.fault is not None

    def findings_of(self, finding_type: FindingType) -> Tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.type == finding_type)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to its JSON shape."""
        data: Dict[str, Any] = {
            "findings": [f.to_dict() for f in self.findings],
            "hasAbsoluteContraindication": self.has_absolute_contraindication,
            "recommendedAction": self.recommended_action.value,
        }
        if self.catalog_version is not None:
            data["catalogVersion"] = self.catalog_version
        if self.fault is not None:
            data["fault"] = self.fault
        return data


@dataclass(frozen=True)
class AuditEvent:
    """Record of one authorization attempt, persisted by an external store."""

    provider_id: str
    patient_id: Optional[str]
    medication_name: Optional[str]
    evaluation_result: EvaluationResult
    override_given: bool
    allowed: bool
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert audit event to its JSON shape."""
        return {
            "eventId": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "providerId": self.provider_id,
            "patientId": self.patient_id,
            "medicationName": self.medication_name,
            "evaluationResult": self.evaluation_result.to_dict(),
            "overrideGiven": self.override_given,
            "allowed": self.allowed,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of the authorization gate.

    A denial is a value, not an exception: the provider may acknowledge
    the risk and retry.
    """

    allowed: bool
    state: AuthorizationState
    audit_event: AuditEvent
    reason: Optional[str] = None
    override_used: bool = False
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "state": self.state.value,
            "reason": self.reason,
            "overrideUsed": self.override_used,
            "warnings": list(self.warnings),
            "auditEvent": self.audit_event.to_dict(),
        }
