import os

# base jetable : jamais la base Postgres configurée
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from pharmacy.app.api.deps import get_db  # noqa: E402
from pharmacy.app.db.base import Base  # noqa: E402
from pharmacy.app.db.models.core_types import PrescriptionStatus, TransactionType  # noqa: E402
from pharmacy.app.db.models.models_v1 import Medicine, Patient, Vendor  # noqa: E402
from pharmacy.app.db.session import make_engine  # noqa: E402
from pharmacy.app.main import app  # noqa: E402
from pharmacy.services import ledger, prescriptions  # noqa: E402

ACTOR_ID = 42
DOCTOR_ID = 7


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base SQLite fichier, neuve pour chaque test.

    Un fichier (et non :memory:) pour que plusieurs threads / sessions
    voient les mêmes données commitées (tests de concurrence).
    """
    eng = make_engine(f"sqlite:///{tmp_path / 'pharmacy.db'}")
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


# ---------- FACTORIES ----------
@pytest.fixture
def make_patient(db_session):
    counter = {"n": 0}

    def _make(name="Jane Doe", contact_number=None, patient_code=None):
        counter["n"] += 1
        p = Patient(
            patient_code=patient_code or f"PAT-{counter['n']:04d}",
            name=name,
            contact_number=contact_number,
        )
        db_session.add(p)
        db_session.commit()
        return p

    return _make


@pytest.fixture
def make_vendor(db_session):
    counter = {"n": 0}

    def _make(name=None, **kwargs):
        counter["n"] += 1
        v = Vendor(name=name or f"Vendor {counter['n']}", **kwargs)
        db_session.add(v)
        db_session.commit()
        return v

    return _make


@pytest.fixture
def make_medicine(db_session, make_vendor):
    """Crée un médicament ; le stock initial passe par une réception ledger."""
    counter = {"n": 0}
    state = {"vendor": None}

    def _make(name=None, stock=0, threshold=None, price="10.00", active=True, expiry_date=None, batch_number=None):
        counter["n"] += 1
        med = Medicine(
            name=name or f"Medicine {counter['n']}",
            unit_price=Decimal(price),
            current_stock=0,
            low_stock_threshold=threshold,
            active=True,
        )
        db_session.add(med)
        db_session.commit()

        if stock:
            if state["vendor"] is None:
                state["vendor"] = make_vendor(name="Opening Stock Vendor")
            ledger.append(
                db_session,
                med.id,
                TransactionType.receipt,
                stock,
                ACTOR_ID,
                vendor_id=state["vendor"].id,
                batch_number=batch_number,
                expiry_date=expiry_date,
            )
        elif expiry_date or batch_number:
            med.expiry_date = expiry_date
            med.batch_number = batch_number
            db_session.commit()
        if not active:
            med.active = False
            db_session.commit()
        db_session.refresh(med)
        return med

    return _make


@pytest.fixture
def make_prescription(db_session, make_patient):
    """items : liste de (medicine, quantity). Finalisée par défaut."""
    state = {"patient": None}

    def _make(items, finalize=True, notes=None, patient=None):
        if patient is None:
            if state["patient"] is None:
                state["patient"] = make_patient()
            patient = state["patient"]
        rx = prescriptions.create_prescription(
            db_session,
            patient_id=patient.id,
            doctor_id=DOCTOR_ID,
            items=[prescriptions.ItemRequest(medicine_id=m.id, quantity=q) for m, q in items],
            notes=notes,
            actor_id=ACTOR_ID,
        )
        if finalize:
            rx = prescriptions.finalize_prescription(db_session, rx.id)
            assert rx.status == PrescriptionStatus.finalized
        return rx

    return _make
