"""
Ledger stock (append-only).

Toute variation de stock passe par ici : une ligne StockTransaction par
mouvement + mise à jour du compteur Medicine.current_stock, dans la même
transaction SQL et sous le guard du médicament. Aucune édition ni
suppression : une correction est un nouvel `adjustment` qui référence la
ligne corrigée.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from pharmacy.app.db.models.core_types import TransactionType, VendorStatus
from pharmacy.app.db.models.models_v1 import Medicine, StockTransaction, Vendor
from pharmacy.services.errors import (
    IdempotencyKeyReused,
    InternalError,
    InvalidQuantity,
    NotFound,
    ValidationError,
    VendorInactive,
    VendorRequired,
)
from pharmacy.services.inventory import MAX_QUANTITY, apply_delta, lock_medicines
from pharmacy.services.locks import medicine_key, stock_guard
from pharmacy.services.uow import unit_of_work

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 500
MAX_IDEMPOTENCY_KEY_LENGTH = 64

POSITIVE_TYPES = {TransactionType.receipt, TransactionType.return_}
NEGATIVE_TYPES = {TransactionType.dispense}


def validate_entry(
    transaction_type: TransactionType,
    quantity_delta: int,
    vendor_id: int | None,
    *,
    batch_number: str | None = None,
    expiry_date: date | None = None,
) -> None:
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise InvalidQuantity("quantity_delta must be an integer")
    if quantity_delta == 0:
        raise InvalidQuantity("quantity_delta must not be zero")
    if abs(quantity_delta) > MAX_QUANTITY:
        raise InvalidQuantity(
            f"quantity_delta must be between -{MAX_QUANTITY} and {MAX_QUANTITY}",
            details={"max": MAX_QUANTITY},
        )
    if transaction_type in POSITIVE_TYPES and quantity_delta < 0:
        raise InvalidQuantity(f"{transaction_type.value} quantity must be positive")
    if transaction_type in NEGATIVE_TYPES and quantity_delta > 0:
        raise InvalidQuantity(f"{transaction_type.value} quantity must be negative")
    if transaction_type == TransactionType.receipt and vendor_id is None:
        raise VendorRequired("A vendor is required for receipt transactions")
    if transaction_type != TransactionType.receipt and (batch_number or expiry_date):
        raise ValidationError("batch_number and expiry_date only apply to receipts")


def post_entry(
    db: Session,
    medicine: Medicine,
    transaction_type: TransactionType,
    quantity_delta: int,
    actor_id: int,
    *,
    vendor_id: int | None = None,
    prescription_id: int | None = None,
    corrects_transaction_id: int | None = None,
    reason: str | None = None,
    idempotency_key: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
) -> StockTransaction:
    """
    Écrit une ligne de ledger et applique le delta au compteur.
    Suppose `medicine` verrouillé (guard + FOR UPDATE) ; ne commit pas.
    Une réception qui porte un lot / une péremption les reporte sur la fiche.
    """
    validate_entry(
        transaction_type, quantity_delta, vendor_id, batch_number=batch_number, expiry_date=expiry_date
    )
    balance = apply_delta(medicine, quantity_delta)
    if batch_number:
        medicine.batch_number = batch_number
    if expiry_date:
        medicine.expiry_date = expiry_date

    tx = StockTransaction(
        medicine_id=medicine.id,
        transaction_type=transaction_type,
        quantity_delta=quantity_delta,
        balance_after=balance,
        vendor_id=vendor_id,
        prescription_id=prescription_id,
        corrects_transaction_id=corrects_transaction_id,
        reason=reason,
        actor_id=actor_id,
        idempotency_key=idempotency_key,
        batch_number=batch_number or None,
        expiry_date=expiry_date,
        created_at=datetime.utcnow(),
    )
    db.add(tx)
    db.flush()
    return tx


def _find_by_idempotency_key(db: Session, key: str) -> StockTransaction | None:
    return db.execute(
        select(StockTransaction).where(StockTransaction.idempotency_key == key)
    ).scalar_one_or_none()


def _replay(
    existing: StockTransaction,
    medicine_id: int,
    transaction_type: TransactionType,
    quantity_delta: int,
) -> StockTransaction:
    # une clé désigne un seul mouvement : même médicament, même type, même delta
    if (
        int(existing.medicine_id) != int(medicine_id)
        or existing.transaction_type != transaction_type
        or int(existing.quantity_delta) != int(quantity_delta)
    ):
        raise IdempotencyKeyReused(
            "Idempotency-Key already used for a different stock transaction",
            details={"transaction_id": existing.id},
        )
    return existing


def _check_vendor(db: Session, vendor_id: int) -> None:
    vendor = db.get(Vendor, vendor_id)
    if not vendor:
        raise NotFound(f"Vendor {vendor_id} not found", details={"vendor_id": vendor_id})
    if vendor.status != VendorStatus.active:
        raise VendorInactive(f"Vendor {vendor.name} is inactive", details={"vendor_id": vendor_id})


def _check_corrected(
    db: Session,
    transaction_type: TransactionType,
    medicine_id: int,
    corrects_transaction_id: int,
) -> None:
    if transaction_type != TransactionType.adjustment:
        raise ValidationError("Only adjustment entries may correct another entry")
    original = db.get(StockTransaction, corrects_transaction_id)
    if not original:
        raise NotFound(
            f"Stock transaction {corrects_transaction_id} not found",
            details={"transaction_id": corrects_transaction_id},
        )
    if int(original.medicine_id) != int(medicine_id):
        raise ValidationError(
            "Corrected transaction belongs to another medicine",
            details={"transaction_id": corrects_transaction_id, "medicine_id": original.medicine_id},
        )


def append(
    db: Session,
    medicine_id: int,
    transaction_type: TransactionType | str,
    quantity_delta: int,
    actor_id: int,
    *,
    vendor_id: int | None = None,
    prescription_id: int | None = None,
    corrects_transaction_id: int | None = None,
    reason: str | None = None,
    idempotency_key: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    timeout: float | None = None,
) -> StockTransaction:
    """
    Ajoute un mouvement au ledger de façon atomique et retourne la ligne créée.

    Ordre :
    1) validation (type / signe / fournisseur) avant tout verrou
    2) guard du médicament + FOR UPDATE
    3) contrôle sous-stock, insert ledger, compteur, commit

    Un `idempotency_key` déjà vu renvoie la ligne existante (rejeu sans double
    stock) si le mouvement rejoué est le même, IdempotencyKeyReused sinon.
    """
    try:
        transaction_type = TransactionType(transaction_type)
    except ValueError:
        raise ValidationError(f"Invalid transaction type {transaction_type!r}") from None
    validate_entry(
        transaction_type, quantity_delta, vendor_id, batch_number=batch_number, expiry_date=expiry_date
    )
    if not actor_id:
        raise ValidationError("actor_id is required")

    if idempotency_key:
        if len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError(
                f"Idempotency-Key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters",
                details={"max_length": MAX_IDEMPOTENCY_KEY_LENGTH},
            )
        existing = _find_by_idempotency_key(db, idempotency_key)
        if existing:
            return _replay(existing, medicine_id, transaction_type, quantity_delta)

    with stock_guard.hold([medicine_key(medicine_id)], timeout=timeout):
        try:
            with unit_of_work(db):
                medicine = lock_medicines(db, [medicine_id])[int(medicine_id)]
                if vendor_id is not None:
                    _check_vendor(db, vendor_id)
                if corrects_transaction_id is not None:
                    _check_corrected(db, transaction_type, medicine_id, corrects_transaction_id)

                tx = post_entry(
                    db,
                    medicine,
                    transaction_type,
                    quantity_delta,
                    actor_id,
                    vendor_id=vendor_id,
                    prescription_id=prescription_id,
                    corrects_transaction_id=corrects_transaction_id,
                    reason=reason,
                    idempotency_key=idempotency_key,
                    batch_number=batch_number,
                    expiry_date=expiry_date,
                )
        except InternalError as exc:
            # même clé posée en parallèle sur un autre médicament
            if not (idempotency_key and isinstance(exc.__cause__, IntegrityError)):
                raise
            existing = _find_by_idempotency_key(db, idempotency_key)
            if existing is None:
                raise
            return _replay(existing, medicine_id, transaction_type, quantity_delta)

    logger.info(
        "ledger append #%s medicine=%s type=%s delta=%+d balance=%s actor=%s",
        tx.id,
        medicine_id,
        transaction_type.value,
        quantity_delta,
        tx.balance_after,
        actor_id,
    )
    return tx


def _naive_utc(value: datetime | None) -> datetime | None:
    # created_at est stocké en UTC naïf
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _filtered(
    stmt: Select,
    transaction_type: TransactionType | str | None,
    start: datetime | None,
    end: datetime | None,
) -> Select:
    start, end = _naive_utc(start), _naive_utc(end)
    if start is not None and end is not None and start > end:
        raise ValidationError("start must be before end")
    if transaction_type is not None:
        try:
            stmt = stmt.where(StockTransaction.transaction_type == TransactionType(transaction_type))
        except ValueError:
            raise ValidationError(f"Invalid transaction type {transaction_type!r}") from None
    if start is not None:
        stmt = stmt.where(StockTransaction.created_at >= start)
    if end is not None:
        stmt = stmt.where(StockTransaction.created_at <= end)
    return stmt.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())


class LedgerView:
    """
    Séquence paresseuse et finie des mouvements d'un médicament, du plus
    récent au plus ancien. Chaque itération relance la requête.
    """

    def __init__(self, db: Session, stmt: Select, batch_size: int = 200):
        self._db = db
        self._stmt = stmt
        self._batch_size = batch_size

    def __iter__(self) -> Iterator[StockTransaction]:
        result = self._db.execute(self._stmt.execution_options(yield_per=self._batch_size))
        return iter(result.scalars())


def list_for_medicine(
    db: Session,
    medicine_id: int,
    *,
    transaction_type: TransactionType | str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> LedgerView:
    if not db.get(Medicine, medicine_id):
        raise NotFound(f"Medicine {medicine_id} not found", details={"medicine_id": medicine_id})
    stmt = select(StockTransaction).where(StockTransaction.medicine_id == medicine_id)
    return LedgerView(db, _filtered(stmt, transaction_type, start, end))


def list_transactions(
    db: Session,
    *,
    medicine_id: int | None = None,
    transaction_type: TransactionType | str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[StockTransaction]:
    if limit < 1:
        raise ValidationError("limit must be positive")
    stmt = select(StockTransaction)
    if medicine_id is not None:
        stmt = stmt.where(StockTransaction.medicine_id == medicine_id)
    stmt = _filtered(stmt, transaction_type, start, end).limit(min(limit, MAX_LIST_LIMIT))
    return list(db.execute(stmt).scalars().all())
