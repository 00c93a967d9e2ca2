from datetime import date

import pytest

from pharmacy.app.db.models.core_types import AlertSeverity, TransactionType
from pharmacy.services import ledger
from pharmacy.services.alerts import classify, classify_expiry, compute_alerts
from pharmacy.services.errors import ValidationError

ACTOR_ID = 42


@pytest.mark.parametrize(
    "stock, threshold, expected",
    [
        (0, 10, AlertSeverity.out),
        (1, 10, AlertSeverity.low),
        (10, 10, AlertSeverity.low),
        (11, 10, None),
        (0, None, AlertSeverity.out),
        (3, None, None),
        (0, 0, AlertSeverity.out),
        (1, 0, None),
    ],
)
def test_classify(stock, threshold, expected):
    assert classify(stock, threshold) == expected


def test_low_then_out_as_stock_drains(db_session, make_medicine):
    """
    GIVEN
    - Amoxicillin, stock 20, seuil 5

    THEN
    - après -15 : alerte low (5 <= 5)
    - après -5  : alerte out
    """
    med = make_medicine(name="Amoxicillin 250mg", stock=20, threshold=5)
    assert compute_alerts(db_session) == []

    ledger.append(db_session, med.id, TransactionType.adjustment, -15, ACTOR_ID)
    alerts = compute_alerts(db_session)
    assert [(a.medicine_id, a.severity, a.current_stock) for a in alerts] == [(med.id, AlertSeverity.low, 5)]

    ledger.append(db_session, med.id, TransactionType.adjustment, -5, ACTOR_ID)
    alerts = compute_alerts(db_session)
    assert [(a.medicine_id, a.severity) for a in alerts] == [(med.id, AlertSeverity.out)]


def test_out_sorted_before_low_then_by_name(db_session, make_medicine):
    make_medicine(name="Zinc", stock=2, threshold=5)
    make_medicine(name="aspirin", stock=1, threshold=5)
    make_medicine(name="Omeprazole", stock=0, threshold=5)
    make_medicine(name="Cetirizine", stock=50, threshold=5)

    alerts = compute_alerts(db_session)

    assert [(a.medicine_name, a.severity) for a in alerts] == [
        ("Omeprazole", AlertSeverity.out),
        ("aspirin", AlertSeverity.low),
        ("Zinc", AlertSeverity.low),
    ]


def test_without_threshold_only_out_alerts(db_session, make_medicine):
    make_medicine(name="No threshold, some stock", stock=1, threshold=None)
    empty = make_medicine(name="No threshold, empty", stock=0, threshold=None)
    make_medicine(name="Zero threshold, some stock", stock=1, threshold=0)

    alerts = compute_alerts(db_session)

    assert [(a.medicine_id, a.severity) for a in alerts] == [(empty.id, AlertSeverity.out)]


def test_inactive_medicines_do_not_alert(db_session, make_medicine):
    make_medicine(name="Withdrawn", stock=0, threshold=5, active=False)
    assert compute_alerts(db_session) == []


def test_filters_severity_and_search(db_session, make_medicine):
    make_medicine(name="Paracetamol 500mg", stock=0, threshold=10)
    make_medicine(name="Paracetamol 1g", stock=4, threshold=10)
    make_medicine(name="Ibuprofen", stock=0, threshold=10)

    outs = compute_alerts(db_session, severity="out")
    assert {a.medicine_name for a in outs} == {"Paracetamol 500mg", "Ibuprofen"}

    para = compute_alerts(db_session, search="PARACET")
    assert {a.medicine_name for a in para} == {"Paracetamol 500mg", "Paracetamol 1g"}

    with pytest.raises(ValidationError):
        compute_alerts(db_session, severity="critical")


def test_alerts_are_idempotent(db_session, make_medicine):
    make_medicine(stock=0, threshold=3)
    make_medicine(stock=2, threshold=3)

    assert compute_alerts(db_session) == compute_alerts(db_session)


def test_stock_below_threshold_is_low_and_empty_is_out(db_session, make_medicine):
    low = make_medicine(name="Paracetamol", stock=5, threshold=10)
    out = make_medicine(name="Omeprazole", stock=0, threshold=10)

    by_id = {a.medicine_id: a.severity for a in compute_alerts(db_session)}

    assert by_id == {low.id: AlertSeverity.low, out.id: AlertSeverity.out}


@pytest.mark.parametrize(
    "expiry, expected",
    [
        (None, None),
        (date(2026, 5, 31), AlertSeverity.expired),
        (date(2026, 6, 1), AlertSeverity.expired),
        (date(2026, 6, 2), AlertSeverity.expiring),
        (date(2026, 7, 1), AlertSeverity.expiring),
        (date(2026, 7, 2), None),
    ],
)
def test_classify_expiry(expiry, expected):
    assert classify_expiry(expiry, date(2026, 6, 1), 30) == expected


def test_expiry_alerts_only_for_stock_on_hand(db_session, make_medicine):
    """
    GIVEN
    - aujourd'hui 2026-06-01
    - Insulin : stock 8, périmé le 30 mai
    - Heparin : stock 8, expire le 10 juin, seuil 10 (donc aussi low)
    - Old syrup : périmé mais stock 0 (seule l'alerte out subsiste)

    THEN
    - expired, out, low, expiring ; Heparin porte deux alertes
    """
    today = date(2026, 6, 1)
    insulin = make_medicine(name="Insulin", stock=8, expiry_date=date(2026, 5, 30))
    heparin = make_medicine(name="Heparin", stock=8, threshold=10, expiry_date=date(2026, 6, 10))
    syrup = make_medicine(name="Old syrup", stock=0, expiry_date=date(2026, 1, 1))
    make_medicine(name="Fresh", stock=8, expiry_date=date(2027, 1, 1))

    alerts = compute_alerts(db_session, today=today)

    assert [(a.medicine_id, a.severity) for a in alerts] == [
        (insulin.id, AlertSeverity.expired),
        (syrup.id, AlertSeverity.out),
        (heparin.id, AlertSeverity.low),
        (heparin.id, AlertSeverity.expiring),
    ]
    assert alerts[0].days_to_expiry == -2
    assert alerts[-1].expiry_date == date(2026, 6, 10)
    assert alerts[-1].days_to_expiry == 9

    expiring = compute_alerts(db_session, severity="expiring", today=today)
    assert [a.medicine_id for a in expiring] == [heparin.id]


def test_alert_search_treats_wildcards_literally(db_session, make_medicine):
    make_medicine(name="Saline 0.9%", stock=0)
    make_medicine(name="Saline 09", stock=0)

    assert [a.medicine_name for a in compute_alerts(db_session, search="%")] == ["Saline 0.9%"]
