import pytest
from conftest import add_service

from booking_backend.routes.service_routes import list_services


def test_list_services_returns_active_services_by_name(booking_db, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('booking_backend.routes.service_routes.ensure_database_ready', lambda: None)
    add_service(booking_db, name='Massage', duration_minutes=45)
    add_service(booking_db, name='Beard trim', duration_minutes=15)
    add_service(booking_db, name='Retired', duration_minutes=30, active=False)

    services = list_services(db=booking_db)

    assert [service.name for service in services] == ['Beard trim', 'Massage']
