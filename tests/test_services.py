from __future__ import annotations

import pytest

from rentcircle import services
from rentcircle.auth import ANONYMOUS
from rentcircle.errors import Forbidden, InvalidArgument, NotFound


@pytest.fixture
def cleaning(db, admin_actor):
    return services.create_service(db, admin_actor, title="Deep cleaning", price=2499, display_order=1)


def test_only_active_services_are_public(db, admin_actor, cleaning):
    hidden = services.create_service(db, admin_actor, title="Painting", price=9999, is_active=False)

    assert [s.id for s in services.list_services(db)] == [cleaning.id]
    assert {s.id for s in services.list_services(db, active_only=False)} == {cleaning.id, hidden.id}


def test_service_validation(db, admin_actor, owner_actor, cleaning):
    with pytest.raises(InvalidArgument):
        services.create_service(db, admin_actor, title="  ")
    with pytest.raises(InvalidArgument):
        services.update_service(db, admin_actor, cleaning.id, price=-1)
    with pytest.raises(Forbidden):
        services.create_service(db, owner_actor, title="Movers")


def test_update_and_delete_service(db, admin_actor, cleaning):
    s = services.update_service(db, admin_actor, cleaning.id, price=1999, is_active=False)
    assert s.price == 1999
    assert services.list_services(db) == []

    services.delete_service(db, admin_actor, cleaning.id)
    with pytest.raises(NotFound):
        services.update_service(db, admin_actor, cleaning.id, price=1)


def test_service_request_lifecycle(db, admin_actor, cleaning):
    req = services.create_service_request(
        db, ANONYMOUS, service_id=cleaning.id, name="Asha", email="Asha@Example.com", phone="9000000000",
        address="Flat 4, Baner",
    )
    assert req.status == "pending"
    assert req.email == "asha@example.com"
    assert req.user_id is None

    got = services.list_service_requests(db, admin_actor, query="asha")
    assert [r.id for r in got] == [req.id]
    assert services.service_request_out(got[0])["service_title"] == "Deep cleaning"
    assert services.list_service_requests(db, admin_actor, status="completed") == []

    req = services.update_service_request(db, admin_actor, req.id, status="contacted", admin_notes="Visit Tue")
    assert req.status == "contacted"
    assert req.admin_notes == "Visit Tue"
    with pytest.raises(InvalidArgument):
        services.update_service_request(db, admin_actor, req.id, status="teleported")

    services.delete_service_request(db, admin_actor, req.id)
    assert services.list_service_requests(db, admin_actor) == []


def test_service_request_needs_contact(db, cleaning):
    with pytest.raises(InvalidArgument):
        services.create_service_request(db, ANONYMOUS, service_id=cleaning.id, name="Asha", email="", phone="1")


def test_cannot_request_inactive_service(db, admin_actor, cleaning):
    services.update_service(db, admin_actor, cleaning.id, is_active=False)
    with pytest.raises(NotFound):
        services.create_service_request(db, ANONYMOUS, service_id=cleaning.id, name="A", email="a@b.c", phone="1")


def test_sponsor_settings_singleton(db, admin_actor):
    assert services.sponsor_out(services.get_sponsor_settings(db))["upi_id"] is None

    services.update_sponsor_settings(db, admin_actor, upi_id=" rentcircle@upi ", message="Thanks!")
    row = services.update_sponsor_settings(db, admin_actor, bank_name="State Bank")

    out = services.sponsor_out(row)
    assert out["upi_id"] == "rentcircle@upi"
    assert out["bank_name"] == "State Bank"
    assert out["message"] == "Thanks!"
    assert services.get_sponsor_settings(db).id == row.id


def test_null_update_keeps_required_columns(db, admin_actor, cleaning):
    s = services.update_service(
        db, admin_actor, cleaning.id, title=None, price=None, is_active=None, display_order=None, description=None
    )
    assert (s.title, s.price, s.is_active, s.display_order) == ("Deep cleaning", 2499, True, 1)
    assert s.description is None
    assert [x.id for x in services.list_services(db)] == [cleaning.id]
