"""Configuration for the appointment booking client.

Values come from the environment (or a .env file) so deployments can point
the client at another backend without touching code.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# API Configuration
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:3001/api").rstrip("/")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))
HTTP_POOL_SIZE = int(os.getenv("HTTP_POOL_SIZE", "10"))

# Durable client state: bearer token + minimal user profile
SESSION_FILE = Path(
    os.getenv("SESSION_FILE", str(Path.home() / ".medicitas" / "session.json"))
).expanduser()

# Session bootstrap is the only retried call
AUTH_BOOTSTRAP_MAX_ATTEMPTS = int(os.getenv("AUTH_BOOTSTRAP_MAX_ATTEMPTS", "3"))
AUTH_BOOTSTRAP_DELAY_SECONDS = float(os.getenv("AUTH_BOOTSTRAP_DELAY_SECONDS", "1.0"))

AVAILABILITY_DEBOUNCE_SECONDS = float(os.getenv("AVAILABILITY_DEBOUNCE_SECONDS", "0.3"))

# Applied when the backend reports a slot start without an end
DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES", "30"))

CIRCUIT_FAILURE_THRESHOLD = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))
CIRCUIT_RESET_TIMEOUT = float(os.getenv("CIRCUIT_RESET_TIMEOUT", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Mock backend (mock_api.py)
MOCK_API_PORT = int(os.getenv("MOCK_API_PORT", "3001"))

# Client routes
LOGIN_ROUTE = "/auth/login"
PATIENT_DASHBOARD_ROUTE = "/paciente/dashboard"
PATIENT_APPOINTMENTS_ROUTE = "/paciente/citas"
DOCTOR_DASHBOARD_ROUTE = "/medicos/dashboard"
