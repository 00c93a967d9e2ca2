from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_actor_id, get_db
from pharmacy.app.api.response import ok
from pharmacy.app.db.models.core_types import TransactionType
from pharmacy.app.schemas.medicine import MedicineRead
from pharmacy.app.schemas.stock import StockTransactionCreate, StockTransactionRead
from pharmacy.services import ledger
from pharmacy.services.catalog import get_medicine

router = APIRouter(prefix="/stock/transactions")


def _clean_idempotency_key(idempotency_key: str | None) -> str | None:
    if idempotency_key is None or not idempotency_key.strip():
        return None
    # la longueur est contrôlée par le ledger (400 au-delà)
    return idempotency_key.strip()


@router.get("")
def list_stock_transactions(
    medicine_id: int | None = None,
    transaction_type: TransactionType | None = Query(default=None, alias="type"),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(default=100, ge=1),
    db: Session = Depends(get_db),
):
    """Ledger (READ ONLY), du plus récent au plus ancien."""
    if medicine_id is not None:
        get_medicine(db, medicine_id)
    rows = ledger.list_transactions(
        db,
        medicine_id=medicine_id,
        transaction_type=transaction_type,
        start=start_date,
        end=end_date,
        limit=limit,
    )
    return ok([StockTransactionRead.model_validate(t) for t in rows])


@router.post("")
def create_stock_transaction(
    payload: StockTransactionCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    tx = ledger.append(
        db,
        payload.medicine_id,
        payload.transaction_type,
        payload.quantity_delta,
        actor_id,
        vendor_id=payload.vendor_id,
        corrects_transaction_id=payload.corrects_transaction_id,
        reason=payload.reason,
        batch_number=payload.batch_number,
        expiry_date=payload.expiry_date,
        idempotency_key=_clean_idempotency_key(idempotency_key),
    )
    return ok(
        {
            "transaction": StockTransactionRead.model_validate(tx),
            "medicine": MedicineRead.model_validate(get_medicine(db, payload.medicine_id)),
        },
        status_code=201,
    )
