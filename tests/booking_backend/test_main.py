from booking_backend import main
from booking_backend.core import config


def test_root_reports_status() -> None:
    assert main.root() == {'status': 'Booking API Running', 'environment': config.APP_ENV}


def test_run_serves_app_with_configured_address(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(main.uvicorn, 'run', lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setattr(config, 'APP_HOST', '0.0.0.0')
    monkeypatch.setattr(config, 'APP_PORT', 8080)

    main.run()

    assert calls == [(main.app, {'host': '0.0.0.0', 'port': 8080, 'log_level': config.LOG_LEVEL.lower()})]
