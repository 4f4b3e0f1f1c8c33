"""Tests for session storage and the session context."""
import json
import os
import stat

from medicitas.models import Role
from medicitas.navigation import Navigator
from medicitas import config


class TestSessionStorage:
    """Test the durable session file."""

    def test_missing_file(self, storage):
        assert storage.load() is None

    def test_save_and_load(self, storage, doctor_identity):
        storage.save("tok-1", doctor_identity)

        stored = storage.load()
        assert stored.token == "tok-1"
        assert stored.identity == doctor_identity

    def test_file_is_private(self, storage, patient_identity):
        storage.save("tok-1", patient_identity)

        mode = stat.S_IMODE(os.stat(storage.path).st_mode)
        assert mode == 0o600

    def test_corrupt_file_is_discarded(self, storage):
        """Should ignore and remove an unreadable session file."""
        storage.path.write_text("{not json", encoding="utf-8")

        assert storage.load() is None
        assert not storage.path.exists()

    def test_missing_token_is_discarded(self, storage):
        storage.path.write_text(json.dumps({"user": None}), encoding="utf-8")

        assert storage.load() is None

    def test_clear_without_file(self, storage):
        storage.clear()

        assert not storage.path.exists()


class TestSessionContext:
    """Test the single writer path and change notifications."""

    def test_establish_persists_and_notifies(self, session_context, patient_identity):
        seen = []
        session_context.subscribe(seen.append)

        session_context.establish("tok-1", patient_identity)

        assert session_context.is_authenticated
        assert session_context.role == Role.PATIENT
        assert session_context.storage.load().token == "tok-1"
        assert seen == [patient_identity]

    def test_clear(self, session_context, patient_identity):
        seen = []
        session_context.establish("tok-1", patient_identity)
        session_context.subscribe(seen.append)

        session_context.clear()

        assert not session_context.is_authenticated
        assert session_context.storage.load() is None
        assert seen == [None]

    def test_unsubscribe(self, session_context, patient_identity):
        seen = []
        unsubscribe = session_context.subscribe(seen.append)
        unsubscribe()

        session_context.establish("tok-1", patient_identity)

        assert seen == []

    def test_restore_sets_only_the_token(self, session_context, storage, patient_identity):
        """The identity waits for the backend to confirm the token."""
        storage.save("stored", patient_identity)

        assert session_context.restore() == "stored"
        assert session_context.token == "stored"
        assert session_context.identity is None
        assert not session_context.is_authenticated


class TestNavigator:
    def test_home_for_role(self, patient_identity, doctor_identity):
        assert Navigator.home_for(patient_identity) == config.PATIENT_DASHBOARD_ROUTE
        assert Navigator.home_for(doctor_identity) == config.DOCTOR_DASHBOARD_ROUTE
        assert Navigator.home_for(None) == config.LOGIN_ROUTE

    def test_go_skips_repeated_route(self):
        navigator = Navigator()
        navigator.go(config.PATIENT_DASHBOARD_ROUTE)
        navigator.go(config.PATIENT_DASHBOARD_ROUTE)

        assert navigator.history == [config.LOGIN_ROUTE, config.PATIENT_DASHBOARD_ROUTE]
        assert navigator.current == config.PATIENT_DASHBOARD_ROUTE
