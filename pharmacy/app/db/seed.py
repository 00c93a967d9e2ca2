from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from pharmacy.app.core.log_config import configure_logging
from pharmacy.app.db.base import Base
from pharmacy.app.db.models.core_types import TransactionType
from pharmacy.app.db.models.models_v1 import Medicine, Patient, Vendor
from pharmacy.app.db.session import SessionLocal, engine
from pharmacy.services import catalog, ledger, vendors

logger = logging.getLogger(__name__)

SEED_ACTOR_ID = 1

SEED_MEDICINES = [
    # name, generic, prix, seuil, stock initial, lot, péremption (jours)
    ("Paracetamol 500mg", "Paracetamol", Decimal("2.50"), 50, 200, "PCM-2401", 540),
    ("Amoxicillin 250mg", "Amoxicillin", Decimal("8.75"), 30, 20, "AMX-2312", 21),
    ("Omeprazole 20mg", "Omeprazole", Decimal("5.10"), 20, 0, None, None),
    ("Cetirizine 10mg", "Cetirizine", Decimal("1.90"), None, 60, "CTZ-2207", -3),
]


def run_seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # 1) Fournisseur
        vendor = db.scalar(select(Vendor).where(Vendor.name == "MedSupply Distributors"))
        if not vendor:
            vendor = vendors.create_vendor(
                db,
                name="MedSupply Distributors",
                contact_person="R. Kumar",
                phone="+911234567890",
                email="orders@medsupply.example",
            )

        # 2) Catalogue + réception initiale (le stock ne naît que via le ledger)
        for name, generic, price, threshold, qty, batch, shelf_days in SEED_MEDICINES:
            if db.scalar(select(Medicine).where(Medicine.name == name)):
                continue
            med = catalog.create_medicine(
                db,
                name=name,
                generic_name=generic,
                unit_price=price,
                low_stock_threshold=threshold,
            )
            if qty:
                ledger.append(
                    db,
                    med.id,
                    TransactionType.receipt,
                    qty,
                    SEED_ACTOR_ID,
                    vendor_id=vendor.id,
                    reason="opening stock",
                    batch_number=batch,
                    expiry_date=date.today() + timedelta(days=shelf_days) if shelf_days is not None else None,
                )

        # 3) Patient de démo
        if not db.scalar(select(Patient).where(Patient.patient_code == "PAT-0001")):
            db.add(Patient(patient_code="PAT-0001", name="Demo Patient", contact_number="9876543210"))
            db.commit()

        logger.info("seed ok: vendor=%s, %s medicines", vendor.name, len(SEED_MEDICINES))
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    run_seed()
