"""Prescription Authoring Session.

Tracks one prescription while it is being written. Every edit re-runs the
safety evaluation, and a prescription with warnings can only be saved after
the prescriber acknowledges them with a reason.

States:
    EMPTY -> DRAFTING <-> WARNED -> ACKNOWLEDGED -> SAVED

Any edit returns the session to DRAFTING (or WARNED, or EMPTY) and clears a
previous acknowledgement. SAVED is terminal.
"""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
import logging
from typing import Any
from uuid import uuid4

from prescription_safety.schemas.base import Condition
from prescription_safety.services.safety_evaluator import (
    EvaluationResult,
    MedicationEntry,
    PatientContext,
    SafetyEvaluator,
    SafetyWarning,
    coerce_conditions,
    coerce_medication,
    get_safety_evaluator,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of a prescription being authored."""

    EMPTY = "empty"
    DRAFTING = "drafting"
    WARNED = "warned"
    ACKNOWLEDGED = "acknowledged"
    SAVED = "saved"


class SessionStateError(RuntimeError):
    """Raised when an operation is not allowed in the current session state."""


@dataclass(frozen=True)
class SavedPrescription:
    """Immutable snapshot of a saved prescription."""

    prescription_id: str
    patient_id: str | None
    conditions: tuple[Condition, ...]
    medications: tuple[MedicationEntry, ...]
    warnings: tuple[SafetyWarning, ...]
    acknowledgement_reason: str | None
    saved_at: datetime


class PrescriptionSession:
    """A single prescription being written for one patient."""

    def __init__(self, evaluator: SafetyEvaluator | None = None, patient: Any = None) -> None:
        self.evaluator = evaluator or get_safety_evaluator()
        patient_id = getattr(patient, "patient_id", None)
        if patient_id is None and isinstance(patient, Mapping):
            patient_id = patient.get("patient_id")
        self.patient = PatientContext(conditions=coerce_conditions(patient), patient_id=patient_id)

        self.state = SessionState.EMPTY
        self.result: EvaluationResult | None = None
        self.acknowledgement_reason: str | None = None
        self._medications: list[MedicationEntry] = []

    @property
    def medications(self) -> tuple[MedicationEntry, ...]:
        return tuple(self._medications)

    @property
    def warnings(self) -> list[SafetyWarning]:
        return list(self.result.warnings) if self.result else []

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def add_medication(self, medication: Any) -> list[SafetyWarning]:
        self._ensure_editable()
        self._medications.append(coerce_medication(medication))
        return self._reevaluate()

    def update_medication(self, index: int, medication: Any) -> list[SafetyWarning]:
        self._ensure_editable()
        self._medications[index] = coerce_medication(medication)
        return self._reevaluate()

    def remove_medication(self, index: int) -> list[SafetyWarning]:
        self._ensure_editable()
        del self._medications[index]
        return self._reevaluate()

    def set_conditions(self, conditions: list[Any]) -> list[SafetyWarning]:
        """Replace the patient's conditions and re-check the prescription."""
        self._ensure_editable()
        self.patient.conditions = coerce_conditions({"conditions": conditions})
        return self._reevaluate()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def acknowledge(self, reason: str) -> None:
        """Accept the current warnings, recording why."""
        if self.state != SessionState.WARNED:
            raise SessionStateError(f"Cannot acknowledge warnings in state {self.state.value!r}")
        if not reason or not reason.strip():
            raise SessionStateError("An acknowledgement reason is required")
        self.acknowledgement_reason = reason.strip()
        self.state = SessionState.ACKNOWLEDGED
        logger.info(f"Prescriber acknowledged {len(self.warnings)} warnings")

    def save(self) -> SavedPrescription:
        """Freeze the prescription. Allowed when clean or acknowledged."""
        if self.state not in (SessionState.DRAFTING, SessionState.ACKNOWLEDGED):
            raise SessionStateError(f"Cannot save a prescription in state {self.state.value!r}")

        saved = SavedPrescription(
            prescription_id=str(uuid4()),
            patient_id=self.patient.patient_id,
            conditions=tuple(self.patient.conditions),
            medications=tuple(replace(m) for m in self._medications),
            warnings=tuple(self.warnings),
            acknowledgement_reason=self.acknowledgement_reason,
            saved_at=datetime.now(UTC),
        )
        self.state = SessionState.SAVED
        logger.info(f"Saved prescription {saved.prescription_id} with {len(saved.medications)} medications")
        return saved

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_editable(self) -> None:
        if self.state == SessionState.SAVED:
            raise SessionStateError("Saved prescriptions cannot be edited")

    def _reevaluate(self) -> list[SafetyWarning]:
        self.acknowledgement_reason = None
        if not self._medications:
            self.result = None
            self.state = SessionState.EMPTY
            return []

        self.result = self.evaluator.check(self.patient, self._medications)
        self.state = SessionState.WARNED if self.result.warnings else SessionState.DRAFTING
        return self.warnings
