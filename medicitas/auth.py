"""Login (password or Google redirect), registration, session bootstrap and logout."""
import logging
import re
from typing import Any, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from medicitas import config
from medicitas.errors import (
    AuthExpired,
    MedicitasError,
    NetworkFailure,
    RemoteRejection,
    ValidationError,
)
from medicitas.models import ApiEnvelope, Identity, parse

logger = logging.getLogger(__name__)

AUTH_BASE = "/auth"

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def validate_email(email: Optional[str]) -> bool:
    """Validate email format using regex."""
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def _require(fields: dict) -> None:
    missing = [name for name, value in fields.items() if not (value or "").strip()]
    if missing:
        raise ValidationError(f"Missing required field: {', '.join(missing)}")


def _is_transient(error: BaseException) -> bool:
    """Bootstrap retries only failures that may go away on their own."""
    if isinstance(error, NetworkFailure):
        return True
    if isinstance(error, RemoteRejection):
        return error.status is not None and error.status >= 500
    return False


class AuthService:
    """
    Owns the writer side of the SessionContext.

    Responsibilities:
    - Validate credentials client-side before any request
    - Establish the session from login/registration responses
    - Resolve a stored session on startup (bounded, fixed-delay retry)
    - Confirm tokens handed over by the Google sign-in redirect
    - Route the user to the dashboard for their role
    """

    def __init__(
        self,
        gateway,
        session_context,
        navigator=None,
        max_attempts: int = config.AUTH_BOOTSTRAP_MAX_ATTEMPTS,
        retry_delay: float = config.AUTH_BOOTSTRAP_DELAY_SECONDS,
    ):
        self.gateway = gateway
        self.session_context = session_context
        self.navigator = navigator
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def login(self, email: str, password: str) -> Identity:
        """
        Log in with email and password.

        Raises:
            ValidationError: Malformed email or empty password (no request sent)
            RemoteRejection: Wrong credentials or other backend refusal
        """
        email = (email or "").strip()
        if not validate_email(email):
            raise ValidationError(
                "Please provide a valid email (e.g., name@example.com)."
            )
        if not password:
            raise ValidationError("Password is required.")

        envelope = self.gateway.post(
            f"{AUTH_BASE}/login", json={"email": email, "password": password}
        )
        return self._accept(envelope)

    def register_patient(
        self,
        email: str,
        password: str,
        name: str,
        apellido: str,
        telefono: Optional[str] = None,
    ) -> Identity:
        """Create a patient account and sign in."""
        _require({"email": email, "password": password, "name": name, "apellido": apellido})
        if not validate_email(email.strip()):
            raise ValidationError(
                "Please provide a valid email (e.g., name@example.com)."
            )

        payload = {
            "email": email.strip(),
            "password": password,
            "name": name.strip(),
            "apellido": apellido.strip(),
        }
        if telefono:
            payload["telefono"] = telefono.strip()

        envelope = self.gateway.post(f"{AUTH_BASE}/register", json=payload)
        return self._accept(envelope)

    def register_doctor(
        self,
        email: str,
        password: str,
        name: str,
        apellido: str,
        especialidad: str,
        telefono: Optional[str] = None,
        descripcion: Optional[str] = None,
    ) -> Identity:
        """Create a doctor account and sign in."""
        _require({
            "email": email,
            "password": password,
            "name": name,
            "apellido": apellido,
            "especialidad": especialidad,
        })
        if not validate_email(email.strip()):
            raise ValidationError(
                "Please provide a valid email (e.g., name@example.com)."
            )

        payload = {
            "email": email.strip(),
            "password": password,
            "name": name.strip(),
            "apellido": apellido.strip(),
            "telefono": (telefono or "").strip() or None,
            "especialidad": especialidad.strip(),
            "descripcion": descripcion or "",
        }
        envelope = self.gateway.post(f"{AUTH_BASE}/register-medico", json=payload)
        return self._accept(envelope)

    def bootstrap(self) -> Optional[Identity]:
        """
        Resolve the stored session on startup.

        Retries GET /auth/me up to max_attempts times with a fixed delay.
        When it still fails the session is treated as invalid and cleared.

        Returns:
            The confirmed identity, or None when there is no valid session
        """
        token = self.session_context.restore()
        if not token:
            return None

        try:
            identity = self._confirm_token()
        except AuthExpired:
            # Gateway already purged the session
            return None
        except MedicitasError as e:
            logger.warning("Session bootstrap failed, clearing session: %s", e.message)
            self.session_context.clear()
            return None

        self.session_context.establish(token, identity)
        return identity

    def google_login_url(self) -> str:
        """Backend URL that starts the Google sign-in redirect."""
        return f"{self.gateway.base_url}{AUTH_BASE}/google"

    def complete_oauth(self, token: Optional[str] = None, error: Optional[str] = None) -> Identity:
        """
        Finish an external (Google) login from the redirect parameters.

        The token is confirmed through GET /auth/me with the same bounded
        retry as bootstrap before the session is established.

        Args:
            token: Bearer token from the callback, if any
            error: Error text from the callback, shown as-is

        Raises:
            RemoteRejection: The provider reported an error or no token arrived
            AuthExpired: The backend refused the token
        """
        if error or not token:
            self._to_login()
            raise RemoteRejection(error or "No authentication token was received.")

        self.session_context.adopt(token)
        try:
            identity = self._confirm_token()
        except AuthExpired:
            raise
        except MedicitasError:
            self.session_context.clear()
            self._to_login()
            raise

        self.session_context.establish(token, identity)
        if self.navigator is not None:
            self.navigator.go(self.navigator.home_for(identity))
        return identity

    def logout(self) -> None:
        self.session_context.clear()
        self._to_login()

    def _to_login(self) -> None:
        if self.navigator is not None:
            self.navigator.go(config.LOGIN_ROUTE)

    def _confirm_token(self) -> Identity:
        retryer = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(self._fetch_me)

    def _fetch_me(self) -> Identity:
        envelope = self.gateway.get(f"{AUTH_BASE}/me")
        data: Any = envelope.data
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            data = data["user"]
        return parse(Identity, data)

    def _accept(self, envelope: ApiEnvelope) -> Identity:
        data = envelope.data if isinstance(envelope.data, dict) else {}
        token = data.get("token")
        user = data.get("user")
        if not token or not user:
            raise RemoteRejection("The server did not return a session.", payload=envelope.data)

        identity = parse(Identity, user)
        self.session_context.establish(token, identity)
        if self.navigator is not None:
            self.navigator.go(self.navigator.home_for(identity))
        return identity
