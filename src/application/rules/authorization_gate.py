"""Authorization Gate.

Decides whether a provider may proceed to prescription creation given an
evaluation result and the provider's acknowledgment, and builds the audit
event for every attempt.

Decision table:
- DO_NOT_PRESCRIBE / absolute contraindication: allowed only with override
- USE_WITH_EXTREME_CAUTION / MANUAL_REVIEW_REQUIRED: allowed only with
  the provider's risk acknowledgment
- MONITOR_CLOSELY / SAFE_TO_PRESCRIBE: allowed (acknowledgment required
  only when require_general_acknowledgment is set)

Persisting the audit event is handed to an AuditPublisher and never
changes the decision.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from domain.prescription_safety_models import (
    AuditEvent,
    AuthorizationDecision,
    AuthorizationState,
    EvaluationResult,
    InvalidTransitionError,
    MedicationRequest,
    PatientContext,
    RecommendedAction,
)

logger = logging.getLogger(__name__)

ABSOLUTE_OVERRIDE_REQUIRED = "absolute contraindication present, override required"
RISK_ACKNOWLEDGMENT_REQUIRED = "risk acknowledgment required"
GENERAL_ACKNOWLEDGMENT_REQUIRED = "provider acknowledgment required"

_ACK_REQUIRED_ACTIONS = {
    RecommendedAction.USE_WITH_EXTREME_CAUTION,
    RecommendedAction.MANUAL_REVIEW_REQUIRED,
}


@dataclass
class AuthorizationGateConfig:
    """Configuration for the authorization gate."""

    # Require the acknowledgment even for MONITOR_CLOSELY / SAFE_TO_PRESCRIBE
    require_general_acknowledgment: bool = False


class AuthorizationGate:
    """Turns an evaluation result into an authorization decision."""

    def __init__(
        self,
        config: Optional[AuthorizationGateConfig] = None,
        audit_publisher=None,
    ):
        """
        Initialize the gate.

        Args:
            config: Gate configuration
            audit_publisher: Optional publisher with publish(event) -> Optional[str]
        """
        self.config = config or AuthorizationGateConfig()
        self.audit_publisher = audit_publisher

    def authorize(
        self,
        result: EvaluationResult,
        provider_override_ack: bool,
        provider_id: str = "unknown",
    ) -> AuthorizationDecision:
        """
        Decide whether the prescription may proceed.

        Args:
            result: Evaluation result shown to the provider
            provider_override_ack: Provider's explicit risk/override acknowledgment
            provider_id: Provider making the decision

        Returns:
            AuthorizationDecision carrying the audit event. Never raises.
        """
        ack = provider_override_ack is True
        allowed, reason = self._decide(result, ack)
        override_used = allowed and ack and self._requires_ack(result)

        event = AuditEvent(
            provider_id=provider_id,
            patient_id=result.patient_id,
            medication_name=result.medication_name,
            evaluation_result=result,
            override_given=ack,
            allowed=allowed,
            reason=reason,
        )

        warnings = self._publish(event)

        if allowed:
            logger.info(
                f"Authorized {result.medication_name} for patient {result.patient_id} "
                f"by {provider_id} ({result.recommended_action.value}, override={override_used})"
            )
        else:
            logger.warning(
                f"Denied {result.medication_name} for patient {result.patient_id} "
                f"by {provider_id}: {reason}"
            )

        return AuthorizationDecision(
            allowed=allowed,
            state=AuthorizationState.AUTHORIZED if allowed else AuthorizationState.DENIED,
            audit_event=event,
            reason=reason,
            override_used=override_used,
            warnings=tuple(warnings),
        )

    def _requires_ack(self, result: EvaluationResult) -> bool:
        if result.has_absolute_contraindication:
            return True
        if result.recommended_action == RecommendedAction.DO_NOT_PRESCRIBE:
            return True
        if result.recommended_action in _ACK_REQUIRED_ACTIONS:
            return True
        return self.config.require_general_acknowledgment

    def _decide(self, result: EvaluationResult, ack: bool):
        action = result.recommended_action

        if result.has_absolute_contraindication or action == RecommendedAction.DO_NOT_PRESCRIBE:
            return (True, None) if ack else (False, ABSOLUTE_OVERRIDE_REQUIRED)

        if action in _ACK_REQUIRED_ACTIONS:
            return (True, None) if ack else (False, f"{RISK_ACKNOWLEDGMENT_REQUIRED} ({action.value})")

        if self.config.require_general_acknowledgment and not ack:
            return False, GENERAL_ACKNOWLEDGMENT_REQUIRED

        return True, None

    def _publish(self, event: AuditEvent) -> List[str]:
        if self.audit_publisher is None:
            return []
        try:
            warning = self.audit_publisher.publish(event)
        except Exception as e:
            logger.error(f"Audit event {event.event_id} could not be queued: {e}")
            return [f"audit event not persisted: {e}"]
        return [warning] if warning else []


# ========================================
# Workflow
# ========================================

_TRANSITIONS: Dict[AuthorizationState, Set[AuthorizationState]] = {
    AuthorizationState.PENDING_EVALUATION: {AuthorizationState.EVALUATED},
    AuthorizationState.EVALUATED: {AuthorizationState.AUTHORIZED, AuthorizationState.DENIED},
    AuthorizationState.AUTHORIZED: set(),
    AuthorizationState.DENIED: set(),
}


class AuthorizationWorkflow:
    """One evaluate-then-authorize attempt.

    PENDING_EVALUATION -> EVALUATED -> AUTHORIZED | DENIED. Terminal states
    are final; a denied provider retries through retry(), which starts a
    new workflow from the same evaluation.
    """

    def __init__(self, engine, gate: AuthorizationGate, provider_id: str):
        self.engine = engine
        self.gate = gate
        self.provider_id = provider_id
        self.state = AuthorizationState.PENDING_EVALUATION
        self.result: Optional[EvaluationResult] = None
        self.decision: Optional[AuthorizationDecision] = None

    def _transition(self, target: AuthorizationState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Invalid authorization transition: {self.state.value} → {target.value}"
            )
        self.state = target

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def evaluate(
        self,
        patient: PatientContext,
        medication: MedicationRequest,
        catalog=None,
    ) -> EvaluationResult:
        """Run the safety evaluation (PENDING_EVALUATION -> EVALUATED)."""
        if self.state != AuthorizationState.PENDING_EVALUATION:
            raise InvalidTransitionError(f"Workflow already evaluated (state {self.state.value})")
        result = self.engine.evaluate(patient, medication, catalog)
        self.result = result
        self._transition(AuthorizationState.EVALUATED)
        return result

    def authorize(self, provider_override_ack: bool) -> AuthorizationDecision:
        """Run the gate (EVALUATED -> AUTHORIZED | DENIED)."""
        if self.state != AuthorizationState.EVALUATED or self.result is None:
            raise InvalidTransitionError(
                f"Cannot authorize from state {self.state.value}"
            )
        decision = self.gate.authorize(self.result, provider_override_ack, self.provider_id)
        self._transition(decision.state)
        self.decision = decision
        return decision

    def retry(self) -> "AuthorizationWorkflow":
        """New workflow seeded with this evaluation, for a denied attempt."""
        if self.state != AuthorizationState.DENIED:
            raise InvalidTransitionError(f"Only denied workflows can be retried (state {self.state.value})")
        workflow = AuthorizationWorkflow(self.engine, self.gate, self.provider_id)
        workflow.result = self.result
        workflow.state = AuthorizationState.EVALUATED
        return workflow
