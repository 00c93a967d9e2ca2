from decimal import Decimal

import pytest
from sqlalchemy import select

from pharmacy.app.db.models.core_types import PrescriptionStatus, TransactionType
from pharmacy.app.db.models.models_v1 import Prescription, StockTransaction
from pharmacy.services import catalog, ledger, prescriptions
from pharmacy.services.errors import (
    AlreadyCancelled,
    AlreadyDispensed,
    AlreadyFinalized,
    CannotCancelDispensed,
    InsufficientStock,
    InvalidQuantity,
    NotFinalized,
    NotFound,
    PrescriptionCancelled,
    PrescriptionNotDraft,
    UnknownMedicine,
    ValidationError,
)
from pharmacy.services.inventory import MAX_QUANTITY, current_stock
from pharmacy.services.prescriptions import ItemRequest

ACTOR_ID = 42
PHARMACIST_ID = 77


def _dispense_rows(db, prescription_id):
    return (
        db.execute(
            select(StockTransaction)
            .where(StockTransaction.prescription_id == prescription_id)
            .order_by(StockTransaction.id)
        )
        .scalars()
        .all()
    )


def test_create_draft_snapshots_prices(db_session, make_medicine, make_prescription):
    a = make_medicine(price="2.50", stock=10)
    b = make_medicine(price="4.00", stock=10)

    rx = make_prescription([(a, 2), (b, 3)], finalize=False, notes="after meals")

    assert rx.status == PrescriptionStatus.draft
    assert [it.sequence for it in rx.items] == [1, 2]
    assert [it.unit_price for it in rx.items] == [Decimal("2.50"), Decimal("4.00")]
    assert rx.total_amount == Decimal("17.00")
    assert rx.created_by == ACTOR_ID
    # aucune écriture stock à la création
    assert _dispense_rows(db_session, rx.id) == []


def test_create_rejects_bad_input(db_session, make_medicine, make_patient):
    med = make_medicine(stock=5)
    retired = make_medicine(stock=5, active=False)
    patient = make_patient()

    def create(items, patient_id=patient.id):
        return prescriptions.create_prescription(
            db_session, patient_id=patient_id, doctor_id=1, items=items, actor_id=ACTOR_ID
        )

    with pytest.raises(ValidationError):
        create([])
    with pytest.raises(InvalidQuantity):
        create([ItemRequest(medicine_id=med.id, quantity=0)])
    with pytest.raises(InvalidQuantity):
        create([ItemRequest(medicine_id=med.id, quantity=-2)])
    with pytest.raises(UnknownMedicine):
        create([ItemRequest(medicine_id=retired.id, quantity=1)])
    with pytest.raises(UnknownMedicine):
        create([ItemRequest(medicine_id=9999, quantity=1)])
    with pytest.raises(NotFound):
        create([ItemRequest(medicine_id=med.id, quantity=1)], patient_id=9999)

    assert db_session.execute(select(Prescription)).scalars().all() == []


def test_finalize_reprices_from_current_catalog(db_session, make_medicine, make_prescription):
    med = make_medicine(price="2.00", stock=10)
    rx = make_prescription([(med, 5)], finalize=False)
    assert rx.total_amount == Decimal("10.00")

    catalog.update_medicine(db_session, med.id, {"unit_price": Decimal("3.00")})
    rx = prescriptions.finalize_prescription(db_session, rx.id)

    assert rx.status == PrescriptionStatus.finalized
    assert rx.finalized_at is not None
    assert rx.items[0].unit_price == Decimal("3.00")
    assert rx.total_amount == Decimal("15.00")

    with pytest.raises(AlreadyFinalized):
        prescriptions.finalize_prescription(db_session, rx.id)


def test_dispense_posts_one_entry_per_item(db_session, make_medicine, make_prescription):
    """
    GIVEN
    - Paracetamol stock 100, Amoxicillin stock 20
    - ordonnance finalisée : 10 Paracetamol + 6 Amoxicillin

    THEN
    - stocks 90 / 14
    - deux lignes `dispense` référencées par l'ordonnance, acteur = pharmacien
    - statut dispensed
    """
    para = make_medicine(name="Paracetamol", stock=100)
    amox = make_medicine(name="Amoxicillin", stock=20)
    rx = make_prescription([(para, 10), (amox, 6)])

    rx = prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    assert rx.status == PrescriptionStatus.dispensed
    assert rx.dispensed_by == PHARMACIST_ID
    assert rx.dispensed_at is not None
    assert current_stock(db_session, para.id) == 90
    assert current_stock(db_session, amox.id) == 14

    rows = _dispense_rows(db_session, rx.id)
    assert [(r.medicine_id, r.quantity_delta, r.balance_after) for r in rows] == [
        (para.id, -10, 90),
        (amox.id, -6, 14),
    ]
    assert all(r.transaction_type == TransactionType.dispense for r in rows)
    assert all(r.actor_id == PHARMACIST_ID for r in rows)
    assert rows[1].reason == f"prescription #{rx.id} item 2"


def test_dispense_twice_is_refused(db_session, make_medicine, make_prescription):
    med = make_medicine(stock=10)
    rx = make_prescription([(med, 4)])
    prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    with pytest.raises(AlreadyDispensed):
        prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    assert current_stock(db_session, med.id) == 6
    assert len(_dispense_rows(db_session, rx.id)) == 1


def test_insufficient_stock_names_the_medicine(db_session, make_medicine, make_prescription):
    """
    GIVEN
    - Omeprazole stock 2, ordonnance de 5

    THEN
    - InsufficientStock (available=2, requested=5), rien d'écrit, statut inchangé
    """
    med = make_medicine(name="Omeprazole 20mg", stock=2)
    rx = make_prescription([(med, 5)])

    with pytest.raises(InsufficientStock) as exc_info:
        prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    details = exc_info.value.details
    assert details["medicine_id"] == med.id
    assert details["medicine_name"] == "Omeprazole 20mg"
    assert details["available"] == 2
    assert details["requested"] == 5

    assert current_stock(db_session, med.id) == 2
    assert _dispense_rows(db_session, rx.id) == []
    assert prescriptions.get_prescription(db_session, rx.id).status == PrescriptionStatus.finalized


def test_dispense_is_all_or_nothing(db_session, make_medicine, make_prescription):
    """
    Trois lignes, la deuxième en rupture : aucune des trois n'est dispensée.
    """
    a = make_medicine(stock=10)
    b = make_medicine(stock=1)
    c = make_medicine(stock=10)
    rx = make_prescription([(a, 2), (b, 3), (c, 2)])

    with pytest.raises(InsufficientStock) as exc_info:
        prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    assert exc_info.value.medicine_id == b.id
    assert [current_stock(db_session, m.id) for m in (a, b, c)] == [10, 1, 10]
    assert _dispense_rows(db_session, rx.id) == []
    assert prescriptions.get_prescription(db_session, rx.id).status == PrescriptionStatus.finalized


def test_repeated_medicine_checked_on_cumulative_demand(db_session, make_medicine, make_prescription):
    med = make_medicine(stock=3)
    rx = make_prescription([(med, 2), (med, 2)])

    with pytest.raises(InsufficientStock) as exc_info:
        prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    assert exc_info.value.details["requested"] == 4
    assert current_stock(db_session, med.id) == 3


def test_dispense_after_restock_succeeds(db_session, make_medicine, make_prescription, make_vendor):
    med = make_medicine(stock=1)
    rx = make_prescription([(med, 3)])
    with pytest.raises(InsufficientStock):
        prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    ledger.append(db_session, med.id, TransactionType.receipt, 5, ACTOR_ID, vendor_id=make_vendor().id)
    rx = prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    assert rx.status == PrescriptionStatus.dispensed
    assert current_stock(db_session, med.id) == 3


def test_dispense_requires_finalized(db_session, make_medicine, make_prescription):
    med = make_medicine(stock=10)
    draft = make_prescription([(med, 1)], finalize=False)

    with pytest.raises(NotFinalized):
        prescriptions.dispense_prescription(db_session, draft.id, PHARMACIST_ID)

    prescriptions.cancel_prescription(db_session, draft.id)
    with pytest.raises(PrescriptionCancelled):
        prescriptions.dispense_prescription(db_session, draft.id, PHARMACIST_ID)

    with pytest.raises(NotFound):
        prescriptions.dispense_prescription(db_session, 9999, PHARMACIST_ID)
    with pytest.raises(ValidationError):
        prescriptions.dispense_prescription(db_session, draft.id, None)

    assert current_stock(db_session, med.id) == 10


def test_cancel_rules(db_session, make_medicine, make_prescription):
    med = make_medicine(stock=10)
    finalized = make_prescription([(med, 1)])

    rx = prescriptions.cancel_prescription(db_session, finalized.id)
    assert rx.status == PrescriptionStatus.cancelled
    assert rx.cancelled_at is not None
    with pytest.raises(AlreadyCancelled):
        prescriptions.cancel_prescription(db_session, finalized.id)

    dispensed = make_prescription([(med, 1)])
    prescriptions.dispense_prescription(db_session, dispensed.id, PHARMACIST_ID)
    with pytest.raises(CannotCancelDispensed):
        prescriptions.cancel_prescription(db_session, dispensed.id)

    # annuler n'écrit jamais dans le ledger
    assert _dispense_rows(db_session, finalized.id) == []
    assert current_stock(db_session, med.id) == 9


def test_delete_only_drafts(db_session, make_medicine, make_prescription):
    med = make_medicine(stock=10)
    draft = make_prescription([(med, 1)], finalize=False)
    finalized = make_prescription([(med, 1)])

    prescriptions.delete_prescription(db_session, draft.id)
    with pytest.raises(NotFound):
        prescriptions.get_prescription(db_session, draft.id)

    with pytest.raises(PrescriptionNotDraft):
        prescriptions.delete_prescription(db_session, finalized.id)


def test_list_filters(db_session, make_medicine, make_patient, make_prescription):
    med = make_medicine(stock=10)
    alice = make_patient(name="Alice Martin")
    bob = make_patient(name="Bob Tane")
    rx_alice = make_prescription([(med, 1)], patient=alice, notes="chronic")
    rx_bob = make_prescription([(med, 1)], patient=bob, finalize=False)

    assert {rx.id for rx in prescriptions.list_prescriptions(db_session)} == {rx_alice.id, rx_bob.id}
    assert [rx.id for rx in prescriptions.list_prescriptions(db_session, status="draft")] == [rx_bob.id]
    assert [rx.id for rx in prescriptions.list_prescriptions(db_session, search="alice")] == [rx_alice.id]
    assert [rx.id for rx in prescriptions.list_prescriptions(db_session, search="CHRONIC")] == [rx_alice.id]
    assert [rx.id for rx in prescriptions.list_prescriptions(db_session, search=str(rx_bob.id))] == [rx_bob.id]
    assert [rx.id for rx in prescriptions.list_prescriptions(db_session, patient_id=bob.id)] == [rx_bob.id]

    with pytest.raises(ValidationError):
        prescriptions.list_prescriptions(db_session, status="lost")


def test_three_requested_two_available(db_session, make_medicine, make_prescription):
    med = make_medicine(stock=2)
    rx = make_prescription([(med, 3)])

    with pytest.raises(InsufficientStock):
        prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)

    assert current_stock(db_session, med.id) == 2


def test_oversized_item_quantity_is_invalid(db_session, make_medicine, make_patient):
    med = make_medicine(stock=5)
    patient = make_patient()

    for qty in (MAX_QUANTITY + 1, 10**20):
        with pytest.raises(InvalidQuantity):
            prescriptions.create_prescription(
                db_session,
                patient_id=patient.id,
                doctor_id=1,
                items=[ItemRequest(medicine_id=med.id, quantity=qty)],
                actor_id=ACTOR_ID,
            )

    assert db_session.execute(select(Prescription)).scalars().all() == []


def test_create_finalized_in_one_step(db_session, make_medicine, make_patient):
    """
    GIVEN
    - création avec finalize=True

    THEN
    - l'ordonnance naît finalisée, prix figés, directement dispensable
    """
    med = make_medicine(price="3.00", stock=10)
    patient = make_patient()

    rx = prescriptions.create_prescription(
        db_session,
        patient_id=patient.id,
        doctor_id=1,
        items=[ItemRequest(medicine_id=med.id, quantity=4)],
        actor_id=ACTOR_ID,
        finalize=True,
    )

    assert rx.status == PrescriptionStatus.finalized
    assert rx.finalized_at is not None
    assert rx.total_amount == Decimal("12.00")

    rx = prescriptions.dispense_prescription(db_session, rx.id, PHARMACIST_ID)
    assert rx.status == PrescriptionStatus.dispensed
    assert current_stock(db_session, med.id) == 6


def test_failed_create_with_finalize_leaves_no_draft(db_session, make_medicine, make_patient):
    med = make_medicine(stock=10)
    retired = make_medicine(stock=10, active=False)
    patient = make_patient()

    with pytest.raises(UnknownMedicine):
        prescriptions.create_prescription(
            db_session,
            patient_id=patient.id,
            doctor_id=1,
            items=[ItemRequest(medicine_id=med.id, quantity=1), ItemRequest(medicine_id=retired.id, quantity=1)],
            actor_id=ACTOR_ID,
            finalize=True,
        )

    assert db_session.execute(select(Prescription)).scalars().all() == []
