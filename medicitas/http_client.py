"""HTTP boundary to the booking backend.

Purpose: One place that talks HTTP. Attaches the bearer token, tags every
request with an X-Request-ID, normalizes the backend's loose response shapes
into ApiEnvelope, and turns failures into the errors in medicitas.errors.

Pattern: requests.Session with a pooled adapter, wrapped in a circuit breaker.
Business calls are single-attempt; there are no transport-level retries.
"""
import logging
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter

from medicitas import config
from medicitas.circuit_breaker import CircuitBreaker
from medicitas.errors import AuthExpired, NetworkFailure, RemoteRejection
from medicitas.logging_config import generate_request_id
from medicitas.models import ApiEnvelope

logger = logging.getLogger(__name__)

ENVELOPE_KEYS = ("success", "error", "errors", "message", "count")


def create_http_session(pool_size: int = config.HTTP_POOL_SIZE) -> requests.Session:
    """
    Create HTTP session with connection pooling and no automatic retries.

    Args:
        pool_size: Connections kept per host

    Returns:
        Configured requests.Session
    """
    session = requests.Session()
    adapter = HTTPAdapter(
        max_retries=0,
        pool_connections=pool_size,
        pool_maxsize=pool_size,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({
        "Content-Type": "application/json",
        "Accept": "application/json",
    })
    return session


def normalize_payload(body: Any) -> ApiEnvelope:
    """
    Fold every response shape the backend produces into one envelope.

    Handles:
    - bare lists: ``[...]``
    - wrapped payloads: ``{"success": true, "data": ...}``
    - single-key wrappers: ``{"user": {...}}``, ``{"citas": [...]}``
    - bare objects: ``{"token": ..., "user": ...}``
    """
    if not isinstance(body, dict):
        return ApiEnvelope(data=body)

    envelope = {key: _as_text(body.get(key)) for key in ("error", "message")}
    envelope["count"] = body.get("count")
    envelope["success"] = bool(body.get("success", True))

    if "data" in body:
        data = body["data"]
    else:
        rest = {key: value for key, value in body.items() if key not in ENVELOPE_KEYS}
        if len(rest) == 1 and isinstance(next(iter(rest.values())), (dict, list)):
            data = next(iter(rest.values()))
        else:
            data = rest or None

    if not envelope["success"] and not envelope["error"]:
        envelope["error"] = error_message(body)

    if envelope["count"] is not None and not isinstance(envelope["count"], int):
        envelope["count"] = None

    return ApiEnvelope(data=data, **envelope)


def _as_text(value: Any) -> Optional[str]:
    """Flatten an error detail sent as a string, a list or an object."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        for key in ("message", "msg", "error", "detail"):
            if value.get(key):
                return _as_text(value[key])
        return str(value)
    if isinstance(value, (list, tuple)):
        return "; ".join(filter(None, (_as_text(item) for item in value))) or None
    return str(value)


def error_message(body: Any, default: str = "Request failed") -> str:
    """Extract the human-readable error the backend sent, verbatim."""
    if isinstance(body, dict):
        for key in ("error", "message", "errors"):
            text = _as_text(body.get(key))
            if text:
                return text
    if isinstance(body, str) and body.strip():
        return body.strip()
    return default


class ApiGateway:
    """
    Single HTTP boundary used by every service.

    Responsibilities:
    - Read the bearer token from the session context on every request
    - On 401: purge the session, navigate to login, raise AuthExpired
    - Map non-2xx answers to RemoteRejection with the backend's own message
    - Map transport failures to NetworkFailure
    """

    def __init__(
        self,
        session_context,
        base_url: str = config.API_BASE_URL,
        http_session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        navigator=None,
        timeout: float = config.REQUEST_TIMEOUT,
    ):
        """
        Args:
            session_context: SessionContext holding the token (read-only here
                except for the forced logout on 401)
            base_url: API root, e.g. http://localhost:3001/api
            http_session: requests.Session to use (default: pooled session)
            breaker: Circuit breaker guarding the transport
            navigator: Navigator used for the forced redirect to login
            timeout: Per-request timeout in seconds
        """
        self.session_context = session_context
        self.base_url = base_url.rstrip("/")
        self.http = http_session or create_http_session()
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=config.CIRCUIT_FAILURE_THRESHOLD,
            timeout=config.CIRCUIT_RESET_TIMEOUT,
        )
        self.navigator = navigator
        self.timeout = timeout

    def get(self, path: str, params: Optional[dict] = None) -> ApiEnvelope:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None) -> ApiEnvelope:
        return self.request("POST", path, json=json)

    def put(self, path: str, json: Any = None) -> ApiEnvelope:
        return self.request("PUT", path, json=json)

    def delete(self, path: str, json: Any = None) -> ApiEnvelope:
        return self.request("DELETE", path, json=json)

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Any = None,
    ) -> ApiEnvelope:
        """
        Make one API call.

        Args:
            method: HTTP method
            path: Path below the API root, e.g. "/medicos/3/citas"
            params: Query parameters; None values are dropped
            json: JSON body

        Returns:
            Normalized ApiEnvelope (success is always True)

        Raises:
            AuthExpired, RemoteRejection, NetworkFailure, BackendUnavailable
        """
        return self.breaker.call(self._send, method, path, params, json)

    def _send(self, method: str, path: str, params: Optional[dict], json: Any) -> ApiEnvelope:
        request_id = generate_request_id()
        headers = {"X-Request-ID": request_id}
        token = self.session_context.token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if params:
            params = {key: value for key, value in params.items() if value is not None}

        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.http.request(
                method,
                url,
                params=params or None,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.warning("%s %s failed [%s]: %s", method, path, request_id, e)
            raise NetworkFailure() from e
        except requests.exceptions.RequestException as e:
            logger.error("%s %s aborted [%s]: %s", method, path, request_id, e)
            raise NetworkFailure() from e

        logger.info("%s %s -> %s [%s]", method, path, response.status_code, request_id)
        body = self._decode(response)

        # Without a token there is no session to expire (e.g. wrong password)
        if response.status_code == 401 and token:
            self._force_logout()
            raise AuthExpired()

        if not 200 <= response.status_code < 300:
            raise RemoteRejection(
                error_message(body), status=response.status_code, payload=body
            )

        envelope = normalize_payload(body)
        if not envelope.success:
            raise RemoteRejection(
                envelope.error or "Request failed", status=response.status_code, payload=body
            )
        return envelope

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            if 200 <= response.status_code < 300:
                raise NetworkFailure("The server sent an unreadable response.") from None
            return response.text

    def _force_logout(self):
        logger.warning("Unauthorized response, clearing session")
        self.session_context.clear()
        if self.navigator is not None:
            self.navigator.go(config.LOGIN_ROUTE)
