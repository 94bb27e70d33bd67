"""
Pydantic models for the Prescription Safety API.

Request bodies are converted into the immutable domain snapshots
(PatientContext, MedicationRequest) before evaluation; responses reuse the
domain to_dict() JSON shapes.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from domain.prescription_safety_models import (
    MedicationReference,
    MedicationRequest,
    PatientContext,
)


# ========================================
# Request Models
# ========================================

class CurrentMedicationModel(BaseModel):
    """Medication the patient is currently taking."""
    name: str = Field(..., description="Brand or prescribed name")
    generic_name: Optional[str] = Field(None, description="Generic name, if known")


class PatientContextModel(BaseModel):
    """Clinical snapshot of the patient."""
    patient_id: str = Field(..., description="Patient identifier")
    allergies: List[str] = Field(default_factory=list, description="Documented allergies")
    current_medications: List[Union[str, CurrentMedicationModel]] = Field(
        default_factory=list, description="Current medications (names or objects)"
    )
    conditions: List[str] = Field(default_factory=list, description="Known conditions")
    age: Optional[int] = Field(None, description="Age in years; null when unknown")
    is_pregnant: Optional[bool] = Field(None, description="Pregnancy status; null when unknown")
    renal_impairment: Optional[bool] = Field(None, description="Renal impairment; null when unknown")
    hepatic_impairment: Optional[bool] = Field(None, description="Hepatic impairment; null when unknown")

    def to_domain(self) -> PatientContext:
        medications = [
            m if isinstance(m, str) else MedicationReference(name=m.name, generic_name=m.generic_name)
            for m in self.current_medications
        ]
        return PatientContext(
            patient_id=self.patient_id,
            allergies=tuple(self.allergies),
            current_medications=tuple(medications),
            conditions=tuple(self.conditions),
            age=self.age,
            is_pregnant=self.is_pregnant,
            renal_impairment=self.renal_impairment,
            hepatic_impairment=self.hepatic_impairment,
        )


class MedicationRequestModel(BaseModel):
    """Medication proposed for prescription."""
    name: str = Field(..., description="Medication name")
    generic_name: Optional[str] = Field(None, description="Generic name")
    category: str = Field("standard", description="standard | controlled")
    dosage: str = Field("", description="Free-text dosage")
    drug_class: Optional[str] = Field(None, description="Drug class, e.g. 'nsaid'")

    def to_domain(self) -> MedicationRequest:
        return MedicationRequest(
            name=self.name,
            generic_name=self.generic_name,
            category=self.category,
            dosage=self.dosage,
            drug_class=self.drug_class,
        )


class EvaluateRequest(BaseModel):
    """Body of POST /evaluate."""
    patient: PatientContextModel
    medication: MedicationRequestModel


class AuthorizeRequest(BaseModel):
    """Body of POST /authorize: evaluate, then run the authorization gate."""
    patient: PatientContextModel
    medication: MedicationRequestModel
    provider_id: str = Field(..., description="Provider requesting authorization")
    provider_override_ack: bool = Field(
        False, description="Explicit acknowledgment of the displayed risks"
    )


class CatalogReloadRequest(BaseModel):
    """Body of POST /catalog/reload."""
    path: Optional[str] = Field(
        None, description="Catalog file relative to the reload directory; configured path when omitted"
    )


# ========================================
# Response Models
# ========================================

class CatalogSummaryResponse(BaseModel):
    """Active rule catalog summary."""
    version: str
    total_rules: int
    rules_loaded: Dict[str, int] = Field(default_factory=dict)
    rejected_entries: int = 0


class CatalogReloadResponse(BaseModel):
    """Result of a catalog hot reload."""
    previous_version: Optional[str] = None
    catalog: CatalogSummaryResponse


class AuthorizeResponse(BaseModel):
    """Authorization decision plus the evaluation it was based on."""
    evaluation: Dict[str, Any]
    decision: Dict[str, Any]
