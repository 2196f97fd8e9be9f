import random
from datetime import datetime, timedelta

import pytest
from sqlalchemy.dialects import postgresql

from floorops.domain.appointments.schemas import AppointmentCreate
from floorops.domain.appointments.service import AppointmentService
from floorops.domain.inventory.repository import InventoryRepository
from floorops.domain.inventory.schemas import StockInRequest, StockOutRequest
from floorops.domain.inventory.service import InventoryService
from floorops.models import Material, TransactionType
from floorops.shared.errors import (
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    ValidationFailed,
)


@pytest.fixture
def service(db, clock):
    return InventoryService(db, clock=clock, allow_negative_stock=True)


@pytest.fixture
def material(seed):
    return seed["material"]


def stock_in(service, seed, material_id, quantity, **kwargs):
    return service.stock_in(
        StockInRequest(materialId=material_id, quantity=quantity, **kwargs), seed["admin"]
    )


def stock_out(service, seed, material_id, quantity, **kwargs):
    return service.stock_out(
        StockOutRequest(materialId=material_id, quantity=quantity, **kwargs), seed["admin"]
    )


def test_stock_out_may_drive_balance_negative(service, seed, material):
    stock_in(service, seed, material.id, 50)
    stock_out(service, seed, material.id, 70)

    balance = service.get_balance(material.id)

    assert balance.total_in == 50
    assert balance.total_out == 70
    assert balance.current_stock == -20
    assert balance.reorder_level == 10
    assert balance.is_low_stock is True


def test_strict_ledger_rejects_overdraw(db, clock, seed, material):
    service = InventoryService(db, clock=clock, allow_negative_stock=False)
    stock_in(service, seed, material.id, 50)

    with pytest.raises(InsufficientStock) as exc_info:
        stock_out(service, seed, material.id, 70)
    assert exc_info.value.extra["currentStock"] == 50

    stock_out(service, seed, material.id, 50)
    assert service.get_balance(material.id).current_stock == 0


def test_strict_stock_out_locks_material_row(db, clock, seed, material, monkeypatch):
    locked = []
    original = InventoryRepository.lock_material

    def recording_lock(session, material_id):
        locked.append(material_id)
        return original(session, material_id)

    monkeypatch.setattr(InventoryRepository, "lock_material", staticmethod(recording_lock))

    lenient = InventoryService(db, clock=clock, allow_negative_stock=True)
    stock_in(lenient, seed, material.id, 5)
    stock_out(lenient, seed, material.id, 2)
    assert locked == []

    strict = InventoryService(db, clock=clock, allow_negative_stock=False)
    stock_out(strict, seed, material.id, 3)
    assert locked == [material.id]


def test_material_lock_query_selects_for_update(db, material):
    query = InventoryRepository.lock_material_query(db, material.id)
    sql = str(query.statement.compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE" in sql


@pytest.mark.parametrize("quantity", [0, -5])
def test_non_positive_quantity_rejected(service, seed, material, quantity):
    with pytest.raises(InvalidQuantity):
        stock_in(service, seed, material.id, quantity)
    with pytest.raises(InvalidQuantity):
        stock_out(service, seed, material.id, quantity)

    assert service.get_balance(material.id).total_in == 0


def test_unknown_and_inactive_material(service, seed, db):
    with pytest.raises(NotFound):
        stock_in(service, seed, "missing", 5)

    retired = Material(name="Old tile", unit="box", is_active=False)
    db.add(retired)
    db.commit()
    with pytest.raises(ValidationFailed):
        stock_in(service, seed, retired.id, 5)


def test_transaction_defaults_to_now_and_records_actor(service, seed, material, clock):
    txn = stock_in(service, seed, material.id, 5, remarks="  Initial delivery ")

    assert txn.transaction_type == TransactionType.STOCK_IN.value
    assert txn.transaction_date == clock.now
    assert txn.created_by == seed["admin"].id
    assert txn.remarks == "Initial delivery"


def test_balance_always_folds_the_ledger(service, seed, material, db):
    adhesive = Material(name="Adhesive", unit="kg", reorder_level=None)
    db.add(adhesive)
    db.commit()

    rng = random.Random(7)
    expected = {material.id: [0, 0], adhesive.id: [0, 0]}
    for _ in range(40):
        material_id = rng.choice(list(expected))
        quantity = rng.randint(1, 25)
        if rng.random() < 0.5:
            stock_in(service, seed, material_id, quantity)
            expected[material_id][0] += quantity
        else:
            stock_out(service, seed, material_id, quantity)
            expected[material_id][1] += quantity

    for balance in service.list_balances():
        total_in, total_out = expected[balance.material.id]
        assert balance.total_in == total_in
        assert balance.total_out == total_out
        assert balance.current_stock == balance.total_in - balance.total_out


def test_list_balances_filters(service, seed, material, db):
    db.add_all(
        [
            Material(name="Adhesive", unit="kg", reorder_level=5),
            Material(name="Retired grout", unit="kg", is_active=False),
        ]
    )
    db.commit()
    stock_in(service, seed, material.id, 50)

    balances = service.list_balances()
    assert [b.material.name for b in balances] == ["Adhesive", "Vinyl plank"]
    assert balances[0].current_stock == 0
    assert balances[0].is_low_stock is True
    assert balances[1].is_low_stock is False

    assert [b.material.name for b in service.list_balances(low_stock_only=True)] == ["Adhesive"]
    assert [b.material.name for b in service.list_balances(search="vinyl")] == ["Vinyl plank"]


def test_material_without_reorder_level_is_never_low(service, seed, db):
    plain = Material(name="Spacers", unit="pcs", reorder_level=None)
    db.add(plain)
    db.commit()
    stock_out(service, seed, plain.id, 3)

    balance = service.get_balance(plain.id)
    assert balance.current_stock == -3
    assert balance.is_low_stock is False


def test_stock_out_provenance_from_appointment(service, seed, material, db, dispatcher, clock):
    appointment = AppointmentService(db, dispatcher, clock=clock).schedule(
        AppointmentCreate(
            clientId=seed["client"].id,
            engineerId=seed["engineer"].id,
            visitDate=clock.now,
            siteAddress="Flat 3B",
        )
    )

    txn = stock_out(service, seed, material.id, 4, appointmentId=appointment.id)

    assert txn.appointment_id == appointment.id
    assert txn.client_id == seed["client"].id
    assert txn.site_address == "Flat 3B"


def test_stock_out_provenance_validation(service, seed, material, db, dispatcher, clock):
    with pytest.raises(NotFound):
        stock_out(service, seed, material.id, 1, clientId="missing")
    with pytest.raises(NotFound):
        stock_out(service, seed, material.id, 1, appointmentId="missing")

    appointment = AppointmentService(db, dispatcher, clock=clock).schedule(
        AppointmentCreate(
            clientId=seed["client"].id, engineerId=seed["engineer"].id, visitDate=clock.now
        )
    )
    with pytest.raises(ValidationFailed):
        stock_out(
            service,
            seed,
            material.id,
            1,
            appointmentId=appointment.id,
            clientId=seed["inactive_client"].id,
        )


def test_transactions_newest_first_with_filters(service, seed, material):
    base = datetime(2025, 5, 1, 10, 0)
    for day in range(4):
        stock_in(service, seed, material.id, 10 + day, transactionDate=base + timedelta(days=day))
    stock_out(service, seed, material.id, 3, transactionDate=base + timedelta(days=1, hours=2))

    filters = service.transaction_filter()
    items, total = service.list_transactions(filters, page=1, limit=3)
    assert total == 5
    assert [t.quantity for t in items] == [13, 12, 3]

    outs, total = service.list_transactions(
        service.transaction_filter(TransactionType.STOCK_OUT.value), page=1, limit=10
    )
    assert total == 1 and outs[0].quantity == 3

    ranged, total = service.list_transactions(
        service.transaction_filter(start_date=datetime(2025, 5, 2), end_date=datetime(2025, 5, 2)),
        page=1,
        limit=10,
    )
    assert total == 2
    assert [t.quantity for t in ranged] == [3, 11]

    with pytest.raises(ValidationFailed):
        service.transaction_filter("RETURN")


def test_transaction_stream_is_lazy_and_restartable(service, seed, material):
    base = datetime(2025, 5, 1, 10, 0)
    for day in range(5):
        stock_in(service, seed, material.id, day + 1, transactionDate=base + timedelta(days=day))

    stream = service.iter_transactions(service.transaction_filter(), page_size=2)

    assert [len(page) for page in stream.pages()] == [2, 2, 1]
    first = [t.quantity for t in stream]
    second = [t.quantity for t in stream]
    assert first == second == [5, 4, 3, 2, 1]


def test_get_transaction(service, seed, material):
    txn = stock_in(service, seed, material.id, 5)

    assert service.get_transaction(txn.id).quantity == 5
    with pytest.raises(NotFound):
        service.get_transaction("missing")


def test_usage_and_site_reports(service, seed, material, db):
    adhesive = Material(name="Adhesive", unit="kg")
    db.add(adhesive)
    db.commit()

    stock_in(service, seed, material.id, 100)
    stock_out(service, seed, material.id, 5, siteAddress="Site A")
    stock_out(service, seed, material.id, 3, clientId=seed["client"].id)
    stock_out(service, seed, material.id, 2)
    stock_out(service, seed, adhesive.id, 4, siteAddress="Site A")

    assert service.usage_report() == [
        {"materialId": material.id, "materialName": "Vinyl plank", "unit": "box", "totalOut": 10},
        {"materialId": adhesive.id, "materialName": "Adhesive", "unit": "kg", "totalOut": 4},
    ]

    by_site = [(r["siteAddress"], r["materialName"], r["quantity"]) for r in service.by_site_report()]
    assert by_site == [
        (None, "Vinyl plank", 2),
        ("12 MG Road, Bengaluru", "Vinyl plank", 3),
        ("Site A", "Adhesive", 4),
        ("Site A", "Vinyl plank", 5),
    ]
