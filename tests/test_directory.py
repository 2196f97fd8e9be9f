import pytest
from pydantic import ValidationError

from floorops.domain.directory.schemas import (
    ClientCreate,
    ClientTypeCreate,
    ClientUpdate,
    EngineerCreate,
    EngineerUpdate,
    MaterialCreate,
    MaterialUpdate,
)
from floorops.domain.directory.service import DirectoryService
from floorops.models import Client, Engineer
from floorops.shared.errors import NotFound, ValidationFailed
from floorops.shared.validators import validate_mobile_number


@pytest.fixture
def service(db):
    return DirectoryService(db)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9876543210", "+919876543210"),
        ("09876543210", "+919876543210"),
        ("+44 20 7946 0958", "+442079460958"),
        ("91-98765-43210", "+919876543210"),
    ],
)
def test_mobile_numbers_normalize_to_e164(raw, expected):
    assert validate_mobile_number(raw) == expected


@pytest.mark.parametrize("raw", ["12345", "+1234567890123456"])
def test_invalid_mobile_numbers(raw):
    with pytest.raises(ValueError):
        validate_mobile_number(raw)


def test_engineer_email_is_unique(service, seed):
    with pytest.raises(ValidationFailed):
        service.create_engineer(
            EngineerCreate(name="Copy", email="RAVI@example.com", mobileNumber="9800000003")
        )

    with pytest.raises(ValidationFailed):
        service.update_engineer(seed["other_engineer"].id, EngineerUpdate(email="ravi@example.com"))


def test_deactivated_entries_fail_active_lookups(service, seed):
    engineer = service.create_engineer(
        EngineerCreate(name="Meena", email="meena@example.com", mobileNumber="9800000004")
    )
    service.deactivate(engineer)

    assert service.get_engineer(engineer.id).is_active is False
    assert service.get_engineer(engineer.id).deleted_at is not None
    with pytest.raises(ValidationFailed):
        service.require_active_engineer(engineer.id)
    with pytest.raises(NotFound):
        service.require_active_client("missing")


def test_list_entries_search_and_active_filter(service, seed):
    items, total = service.list_entries(Client, page=1, limit=10)
    assert total == 2

    items, total = service.list_entries(Client, page=1, limit=10, active_only=True)
    assert [c.name for c in items] == ["Acme Interiors"]

    items, total = service.list_entries(Engineer, page=1, limit=10, search="ANIL")
    assert [e.name for e in items] == ["Anil Das"]


def test_material_update_keeps_unset_fields(service, seed):
    material = service.update_material(seed["material"].id, MaterialUpdate(reorderLevel=25))

    assert material.reorder_level == 25
    assert material.unit == "box"
    assert material.name == "Vinyl plank"


def test_negative_reorder_level_rejected():
    with pytest.raises(ValidationError):
        MaterialCreate(name="Grout", reorderLevel=-1)


def test_client_types_are_unique_and_sorted(service):
    service.create_client_type(ClientTypeCreate(name="Retail"))
    service.create_client_type(ClientTypeCreate(name="  Builder "))

    with pytest.raises(ValidationFailed):
        service.create_client_type(ClientTypeCreate(name="builder"))
    with pytest.raises(ValidationError):
        ClientTypeCreate(name="   ")

    assert [t.name for t in service.list_client_types()] == ["Builder", "Retail"]


def test_client_type_assignment(service, seed):
    builder = service.create_client_type(ClientTypeCreate(name="Builder"))
    retail = service.create_client_type(ClientTypeCreate(name="Retail"))

    client = service.create_client(
        ClientCreate(name="Prestige Homes", primaryContact="9845012345", clientTypeId=builder.id)
    )
    assert client.client_type.name == "Builder"

    client = service.update_client(client.id, ClientUpdate(clientTypeId=retail.id))
    assert client.client_type_id == retail.id

    client = service.update_client(client.id, ClientUpdate(address="Whitefield"))
    assert client.client_type_id == retail.id

    with pytest.raises(NotFound):
        service.create_client(
            ClientCreate(name="Ghost", primaryContact="9845012346", clientTypeId="missing")
        )
    with pytest.raises(NotFound):
        service.update_client(seed["client"].id, ClientUpdate(clientTypeId="missing"))
