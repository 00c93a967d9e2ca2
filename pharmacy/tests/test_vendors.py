import pytest

from pharmacy.app.db.models.core_types import TransactionType, VendorStatus
from pharmacy.services import ledger, vendors
from pharmacy.services.errors import DuplicateVendor, NotFound, ValidationError, VendorHasHistory
from pharmacy.services.vendors import DeleteOutcome

ACTOR_ID = 42


def test_create_and_duplicate_name(db_session):
    v = vendors.create_vendor(db_session, name="  MedSupply  ", phone="+689 40 00 00 00")

    assert v.id is not None
    assert v.name == "MedSupply"
    assert v.status == VendorStatus.active

    with pytest.raises(DuplicateVendor):
        vendors.create_vendor(db_session, name="medsupply")
    with pytest.raises(ValidationError):
        vendors.create_vendor(db_session, name="   ")


def test_update_partial_and_status(db_session):
    v = vendors.create_vendor(db_session, name="Pacific Pharma", email="old@pp.example")

    v = vendors.update_vendor(db_session, v.id, {"email": "new@pp.example", "status": "inactive"})

    assert v.email == "new@pp.example"
    assert v.name == "Pacific Pharma"
    assert v.status == VendorStatus.inactive

    with pytest.raises(ValidationError):
        vendors.update_vendor(db_session, v.id, {"status": "archived"})
    with pytest.raises(ValidationError):
        vendors.update_vendor(db_session, v.id, {"id": 3})
    with pytest.raises(NotFound):
        vendors.update_vendor(db_session, 999, {"email": "x@y.z"})


def test_list_search_and_status_filter(db_session):
    vendors.create_vendor(db_session, name="Alpha Meds", contact_person="Hina Teriierooiterai")
    vendors.create_vendor(db_session, name="Beta Labs", email="sales@beta.example")
    gamma = vendors.create_vendor(db_session, name="Gamma Health", phone="87 12 34 56")
    vendors.update_vendor(db_session, gamma.id, {"status": "inactive"})

    assert [v.name for v in vendors.list_vendors(db_session)] == ["Alpha Meds", "Beta Labs", "Gamma Health"]
    assert [v.name for v in vendors.list_vendors(db_session, search="HINA")] == ["Alpha Meds"]
    assert [v.name for v in vendors.list_vendors(db_session, search="beta.example")] == ["Beta Labs"]
    assert [v.name for v in vendors.list_vendors(db_session, search="12 34")] == ["Gamma Health"]
    assert [v.name for v in vendors.list_vendors(db_session, status="active")] == ["Alpha Meds", "Beta Labs"]
    assert [v.name for v in vendors.list_vendors(db_session, status="inactive")] == ["Gamma Health"]

    with pytest.raises(ValidationError):
        vendors.list_vendors(db_session, status="deleted")


def test_delete_without_history_removes_row(db_session):
    v = vendors.create_vendor(db_session, name="Never Used")

    assert vendors.delete_vendor(db_session, v.id) == DeleteOutcome.deleted
    with pytest.raises(NotFound):
        vendors.get_vendor(db_session, v.id)


def test_delete_with_history_deactivates(db_session, make_medicine):
    """
    GIVEN
    - un fournisseur référencé par une réception

    THEN
    - delete simple -> inactive, la réception garde sa référence
    - delete hard   -> VendorHasHistory
    """
    med = make_medicine(stock=0)
    v = vendors.create_vendor(db_session, name="Used Vendor")
    tx = ledger.append(db_session, med.id, TransactionType.receipt, 10, ACTOR_ID, vendor_id=v.id)

    assert vendors.has_history(db_session, v.id) is True
    with pytest.raises(VendorHasHistory):
        vendors.delete_vendor(db_session, v.id, hard=True)

    assert vendors.delete_vendor(db_session, v.id) == DeleteOutcome.deactivated
    assert vendors.get_vendor(db_session, v.id).status == VendorStatus.inactive
    db_session.refresh(tx)
    assert tx.vendor_id == v.id


def test_list_search_wildcards_are_literal(db_session):
    vendors.create_vendor(db_session, name="Pacific_Pharma")
    vendors.create_vendor(db_session, name="Pacific Pharma Wholesale")

    assert [v.name for v in vendors.list_vendors(db_session, search="c_p")] == ["Pacific_Pharma"]
    assert vendors.list_vendors(db_session, search="%") == []
