"""Live mock backend fixtures for integration tests."""
import threading
from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from werkzeug.serving import make_server

import mock_api
from medicitas.appointments import AppointmentService
from medicitas.auth import AuthService
from medicitas.availability import AvailabilityService
from medicitas.doctors import DoctorService
from medicitas.http_client import ApiGateway
from medicitas.navigation import Navigator
from medicitas.session import SessionContext
from medicitas.storage import SessionStorage


@pytest.fixture
def live_api():
    """Serve mock_api on an ephemeral port with fresh seed data."""
    mock_api.reset_state()
    server = make_server("127.0.0.1", 0, mock_api.app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}/api"
    server.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def make_client(live_api, tmp_path):
    """Build a fully wired client (one per simulated user)."""
    def _create(name: str):
        session_context = SessionContext(SessionStorage(tmp_path / f"{name}.json"))
        navigator = Navigator()
        gateway = ApiGateway(session_context, base_url=live_api, navigator=navigator)
        return SimpleNamespace(
            session=session_context,
            navigator=navigator,
            gateway=gateway,
            auth=AuthService(gateway, session_context, navigator, retry_delay=0),
            doctors=DoctorService(gateway),
            availability=AvailabilityService(gateway),
            appointments=AppointmentService(gateway),
        )
    return _create


@pytest.fixture
def patient(make_client):
    client = make_client("patient")
    client.auth.login("paciente@example.com", "paciente123")
    return client


@pytest.fixture
def doctor(make_client):
    client = make_client("doctor")
    client.auth.login("ana.garcia@example.com", "medico123")
    return client


@pytest.fixture
def next_weekday() -> date:
    """First Monday-to-Friday date after today."""
    day = date.today() + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day
