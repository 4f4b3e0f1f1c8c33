"""Shared test fixtures."""
import json
from datetime import date
from unittest.mock import Mock

import pytest

from medicitas.models import ApiEnvelope, Appointment, Doctor, Identity, Role
from medicitas.navigation import Navigator
from medicitas.session import SessionContext
from medicitas.storage import SessionStorage


@pytest.fixture
def storage(tmp_path) -> SessionStorage:
    """Session storage in a temporary directory."""
    return SessionStorage(tmp_path / "session.json")


@pytest.fixture
def session_context(storage) -> SessionContext:
    return SessionContext(storage)


@pytest.fixture
def navigator() -> Navigator:
    return Navigator()


@pytest.fixture
def patient_identity() -> Identity:
    return Identity(
        user_id=1, email="paciente@example.com", role=Role.PATIENT,
        name="Laura", apellido="Pérez", paciente_id=1,
    )


@pytest.fixture
def doctor_identity() -> Identity:
    return Identity(
        user_id=2, email="ana.garcia@example.com", role=Role.DOCTOR,
        name="Ana", apellido="García", medico_id=1,
    )


@pytest.fixture
def cardiologist() -> Doctor:
    return Doctor(id=7, nombre="Ana", apellido="García", especialidad="Cardiología")


@pytest.fixture
def mock_gateway():
    """ApiGateway stand-in; every verb returns an empty envelope by default."""
    gateway = Mock()
    for verb in ("get", "post", "put", "delete"):
        getattr(gateway, verb).return_value = ApiEnvelope(data=None)
    return gateway


@pytest.fixture
def make_appointment():
    """Create an appointment as the backend would send it."""
    def _create(cita_id: int = 10, estado: str = "pendiente", **overrides) -> Appointment:
        data = {
            "id": cita_id,
            "paciente_id": 1,
            "medico_id": 1,
            "fecha": "2030-01-07",
            "hora_inicio": "09:00",
            "hora_fin": "09:30",
            "estado": estado,
            "motivo": "control",
        }
        data.update(overrides)
        return Appointment.model_validate(data)
    return _create


@pytest.fixture
def make_response():
    """Create a mock requests.Response."""
    def _create(status_code: int = 200, body=None):
        response = Mock()
        response.status_code = status_code
        if body is None:
            response.content = b""
            response.json.side_effect = ValueError("No JSON")
            response.text = ""
        else:
            response.content = json.dumps(body).encode()
            response.json.return_value = body
            response.text = json.dumps(body)
        return response
    return _create


@pytest.fixture
def future_monday() -> date:
    return date(2030, 1, 7)
