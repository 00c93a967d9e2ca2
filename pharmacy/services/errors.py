"""
Erreurs métier du moteur pharmacie.

Chaque opération publique se termine soit par une valeur, soit par une de
ces erreurs typées. La couche HTTP les traduit en enveloppe
``{"success": false, "error": {...}}`` (voir app/api/exception_handlers.py).

Familles :
- ValidationError      -> entrée invalide, corrigeable par l'appelant (400)
- NotFound             -> id inconnu (404)
- BusinessRuleViolation-> règle métier refusée, jamais rejouée automatiquement (409)
- ConcurrencyConflict  -> verrou stock non obtenu à temps, rejouable (503)
- InternalError        -> panne persistance, message générique (500)
"""

from __future__ import annotations

from typing import Any


class PharmacyError(Exception):
    status_code = 500
    code = "InternalError"

    def __init__(self, msg: str, *, details: dict[str, Any] | None = None, code: str | None = None):
        super().__init__(msg)
        self.msg = msg
        self.details = details or {}
        if code is not None:
            self.code = code


class ValidationError(PharmacyError):
    status_code = 400
    code = "ValidationError"


class NotFound(PharmacyError):
    status_code = 404
    code = "NotFound"


class BusinessRuleViolation(PharmacyError):
    status_code = 409
    code = "BusinessRuleViolation"


class ConcurrencyConflict(PharmacyError):
    status_code = 503
    code = "ConcurrencyConflict"
    retryable = True


class InternalError(PharmacyError):
    status_code = 500
    code = "InternalError"


# ---------- VALIDATION ----------
class InvalidQuantity(ValidationError):
    code = "InvalidQuantity"


class UnknownMedicine(ValidationError):
    code = "UnknownMedicine"

    def __init__(self, medicine_id: int):
        super().__init__(
            f"Unknown or inactive medicine {medicine_id}",
            details={"medicine_id": medicine_id},
        )


# ---------- STOCK ----------
class InsufficientStock(BusinessRuleViolation):
    code = "InsufficientStock"

    def __init__(self, medicine_id: int, medicine_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {medicine_name} (available={available}, requested={requested})",
            details={
                "medicine_id": medicine_id,
                "medicine_name": medicine_name,
                "available": available,
                "requested": requested,
            },
        )
        self.medicine_id = medicine_id


class VendorRequired(BusinessRuleViolation):
    code = "VendorRequired"


class VendorInactive(BusinessRuleViolation):
    code = "VendorInactive"


# ---------- PRESCRIPTIONS ----------
class AlreadyFinalized(BusinessRuleViolation):
    code = "AlreadyFinalized"


class NotFinalized(BusinessRuleViolation):
    code = "NotFinalized"


class AlreadyDispensed(BusinessRuleViolation):
    code = "AlreadyDispensed"


class PrescriptionCancelled(BusinessRuleViolation):
    code = "PrescriptionCancelled"


class CannotCancelDispensed(BusinessRuleViolation):
    code = "CannotCancelDispensed"


class AlreadyCancelled(BusinessRuleViolation):
    code = "AlreadyCancelled"


class PrescriptionNotDraft(BusinessRuleViolation):
    code = "PrescriptionNotDraft"


# ---------- REFERENTIELS ----------
class VendorHasHistory(BusinessRuleViolation):
    code = "VendorHasHistory"


class DuplicateVendor(BusinessRuleViolation):
    code = "DuplicateVendor"


class DuplicateMedicine(BusinessRuleViolation):
    code = "DuplicateMedicine"


# ---------- IDEMPOTENCE ----------
class IdempotencyKeyReused(BusinessRuleViolation):
    code = "IdempotencyKeyReused"
