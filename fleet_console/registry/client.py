"""HTTP client for the mission registry's REST API.

Every call goes through one ``requests.Session``. Reads are retried on
transient failures by the mounted ``urllib3`` retry policy; writes are sent
exactly once. HTTP 401 clears the stored token and notifies the session so
it can force a fresh sign-in.
"""

import logging
from collections.abc import Callable
from typing import Any

import pydantic
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fleet_console.config import Settings
from fleet_console.exceptions.base import FleetConsoleError
from fleet_console.exceptions.client_errors import (
    AuthError,
    AuthorizationError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from fleet_console.exceptions.transport_errors import NetworkError, RegistryError
from fleet_console.fleet.models import Drone
from fleet_console.mission.models import Mission, MissionAction
from fleet_console.registry.models import (
    AuthResult,
    OrganizationStats,
    Report,
    ResponseEnvelope,
    UserProfile,
)
from fleet_console.registry.token_store import TokenStore

logger = logging.getLogger(__name__)

_API_PREFIX = "/api"
_RETRY_BACKOFF_FACTOR = 0.5
_RETRY_STATUS_CODES: frozenset[int] = frozenset({502, 503, 504})
_IDEMPOTENT_READ_METHODS: frozenset[str] = frozenset({"GET"})

_CLIENT_ERRORS_BY_STATUS: dict[int, type[FleetConsoleError]] = {
    400: BadRequestError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    429: RateLimitError,
}


def _create_session(read_retry_total: int) -> requests.Session:
    """Build a session whose adapter retries GETs only."""
    retry = Retry(
        total=read_retry_total,
        backoff_factor=_RETRY_BACKOFF_FACTOR,
        status_forcelist=_RETRY_STATUS_CODES,
        allowed_methods=_IDEMPOTENT_READ_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _parse_model[ModelT: pydantic.BaseModel](
    model: type[ModelT],
    payload: Any,
    *,
    resource: str,
) -> ModelT:
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as error:
        raise RegistryError(
            f"Registry returned a malformed {resource}",
            context={"resource": resource, "errors": error.error_count()},
        ) from error


class RegistryClient:
    """Typed wrapper around the registry's ``/api`` endpoints."""

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        *,
        session: requests.Session | None = None,
        on_auth_failure: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the registry client.

        Args:
            settings: Client settings (base URL, timeout, retries).
            token_store: Source of the bearer token.
            session: Pre-built session, mainly for tests.
            on_auth_failure: Called after a 401 has cleared the token.
        """
        self._base_url = f"{settings.api_base_url}{_API_PREFIX}"
        self._timeout = settings.request_timeout_seconds
        self._token_store = token_store
        self._session = session or _create_session(settings.read_retry_total)
        self._on_auth_failure = on_auth_failure

    def set_auth_failure_handler(self, handler: Callable[[], None] | None) -> None:
        """Replace the callback invoked after a 401."""
        self._on_auth_failure = handler

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> ResponseEnvelope:
        """Send a request and unwrap the response envelope.

        Raises:
            NetworkError: On connection failures and timeouts.
            AuthError: On HTTP 401.
            ClientError: On other 4xx responses.
            RegistryError: On 5xx, malformed bodies or ``status: "error"``.
        """
        url = f"{self._base_url}{path}"
        headers: dict[str, str] = {}
        token = self._token_store.token if authenticated else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("%s %s", method, path)
        try:
            response = self._session.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=self._timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as error:
            raise NetworkError(
                f"Could not reach the registry: {error}",
                method=method,
                url=url,
            ) from error
        except requests.RequestException as error:
            raise NetworkError(
                f"Request to the registry failed: {error}",
                method=method,
                url=url,
            ) from error

        body = self._decode_body(response)
        message = body.get("message") if isinstance(body, dict) else None

        if response.status_code == 401:
            self._handle_auth_failure(authenticated=authenticated)
            raise AuthError(message or "Authentication required", context={"path": path})

        if not response.ok:
            self._raise_for_status(response.status_code, message, method=method, path=path)

        envelope = _parse_model(ResponseEnvelope, body, resource="response envelope")
        if not envelope.is_success:
            raise RegistryError(
                envelope.message or "Registry reported an error",
                status_code=response.status_code,
                context={"method": method, "path": path},
            )
        return envelope

    @staticmethod
    def _decode_body(response: requests.Response) -> Any:
        if not response.content:
            return {"status": "success"} if response.ok else None
        try:
            return response.json()
        except ValueError:
            return None

    def _handle_auth_failure(self, *, authenticated: bool) -> None:
        if not authenticated:
            return
        logger.warning("Registry rejected the bearer token, clearing credentials")
        self._token_store.clear()
        if self._on_auth_failure is not None:
            self._on_auth_failure()

    @staticmethod
    def _raise_for_status(
        status_code: int,
        message: str | None,
        *,
        method: str,
        path: str,
    ) -> None:
        context = {"method": method, "path": path, "status_code": status_code}
        error_class = _CLIENT_ERRORS_BY_STATUS.get(status_code)
        if error_class is not None:
            raise error_class(message or f"Registry rejected {method} {path}", context=context)
        if status_code >= 500:
            raise RegistryError(
                message or f"Registry failed {method} {path}",
                status_code=status_code,
                context={"method": method, "path": path},
            )
        raise BadRequestError(
            message or f"Unexpected registry response {status_code}",
            context=context,
        )

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _parse_auth_result(self, envelope: ResponseEnvelope) -> AuthResult:
        return _parse_model(
            AuthResult,
            {"token": envelope.get_field("token"), "user": envelope.get_field("user")},
            resource="auth result",
        )

    def login(self, email: str, password: str) -> AuthResult:
        """Exchange credentials for a bearer token."""
        envelope = self._request(
            "POST",
            "/auth/login",
            json={"email": email, "password": password},
            authenticated=False,
        )
        return self._parse_auth_result(envelope)

    def register(self, user_data: dict[str, Any]) -> AuthResult:
        """Create an operator account and sign it in."""
        envelope = self._request("POST", "/auth/register", json=user_data, authenticated=False)
        return self._parse_auth_result(envelope)

    def get_profile(self) -> UserProfile:
        """Fetch the profile of the token's owner."""
        envelope = self._request("GET", "/auth/profile")
        return _parse_model(UserProfile, envelope.get_item("user"), resource="profile")

    # ------------------------------------------------------------------
    # Drones
    # ------------------------------------------------------------------

    def list_drones(self, params: dict[str, Any] | None = None) -> list[Drone]:
        """Fetch all drones visible to the operator."""
        envelope = self._request("GET", "/drones", params=params)
        return [
            _parse_model(Drone, item, resource="drone") for item in envelope.get_items("drones")
        ]

    def get_drone(self, drone_id: str) -> Drone:
        """Fetch one drone."""
        envelope = self._request("GET", f"/drones/{drone_id}")
        return _parse_model(Drone, envelope.get_item("drone"), resource="drone")

    def create_drone(self, drone_data: dict[str, Any]) -> Drone:
        """Register a new drone."""
        envelope = self._request("POST", "/drones", json=drone_data)
        return _parse_model(Drone, envelope.get_item("drone"), resource="drone")

    def update_drone(self, drone_id: str, drone_data: dict[str, Any]) -> Drone:
        """Patch a drone's editable fields."""
        envelope = self._request("PATCH", f"/drones/{drone_id}", json=drone_data)
        return _parse_model(Drone, envelope.get_item("drone"), resource="drone")

    def delete_drone(self, drone_id: str) -> None:
        """Remove a drone from the registry."""
        self._request("DELETE", f"/drones/{drone_id}")

    def update_drone_telemetry(self, drone_id: str, telemetry_data: dict[str, Any]) -> Drone:
        """Push a telemetry sample for a drone."""
        envelope = self._request("PATCH", f"/drones/{drone_id}/telemetry", json=telemetry_data)
        return _parse_model(Drone, envelope.get_item("drone"), resource="drone")

    # ------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------

    def list_missions(self, params: dict[str, Any] | None = None) -> list[Mission]:
        """Fetch all missions visible to the operator."""
        envelope = self._request("GET", "/missions", params=params)
        return [
            _parse_model(Mission, item, resource="mission")
            for item in envelope.get_items("missions")
        ]

    def get_mission(self, mission_id: str) -> Mission:
        """Fetch one mission."""
        envelope = self._request("GET", f"/missions/{mission_id}")
        return _parse_model(Mission, envelope.get_item("mission"), resource="mission")

    def create_mission(self, mission_data: dict[str, Any]) -> Mission:
        """Plan a new mission."""
        envelope = self._request("POST", "/missions", json=mission_data)
        return _parse_model(Mission, envelope.get_item("mission"), resource="mission")

    def update_mission(self, mission_id: str, mission_data: dict[str, Any]) -> Mission:
        """Patch a mission's editable fields."""
        envelope = self._request("PATCH", f"/missions/{mission_id}", json=mission_data)
        return _parse_model(Mission, envelope.get_item("mission"), resource="mission")

    def delete_mission(self, mission_id: str) -> None:
        """Remove a mission from the registry."""
        self._request("DELETE", f"/missions/{mission_id}")

    def update_mission_progress(
        self,
        mission_id: str,
        progress_data: dict[str, Any],
    ) -> Mission:
        """Report execution progress for a mission."""
        envelope = self._request("PATCH", f"/missions/{mission_id}/progress", json=progress_data)
        return _parse_model(Mission, envelope.get_item("mission"), resource="mission")

    def send_mission_action(
        self,
        mission_id: str,
        action: MissionAction,
        *,
        reason: str | None = None,
    ) -> Mission | None:
        """Ask the registry to apply a control action.

        Args:
            mission_id: Target mission.
            action: Control action; ``abort`` carries ``reason`` in the body.
            reason: Abort reason.

        Returns:
            The mission as the registry now has it, or None when the
            registry acknowledged the action without returning the mission.
        """
        body = {"reason": reason} if action == MissionAction.ABORT else None
        envelope = self._request("POST", f"/missions/{mission_id}/{action}", json=body)
        item = envelope.get_field("mission")
        if not isinstance(item, dict):
            data = envelope.data
            item = data if isinstance(data, dict) and "_id" in data else None
        if item is None:
            return None
        return _parse_model(Mission, item, resource="mission")

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def list_reports(self, params: dict[str, Any] | None = None) -> list[Report]:
        """Fetch mission reports."""
        envelope = self._request("GET", "/reports", params=params)
        return [
            _parse_model(Report, item, resource="report") for item in envelope.get_items("reports")
        ]

    def get_report(self, report_id: str) -> Report:
        """Fetch one report."""
        envelope = self._request("GET", f"/reports/{report_id}")
        return _parse_model(Report, envelope.get_item("report"), resource="report")

    def create_report(self, report_data: dict[str, Any]) -> Report:
        """File a new report."""
        envelope = self._request("POST", "/reports", json=report_data)
        return _parse_model(Report, envelope.get_item("report"), resource="report")

    def update_report(self, report_id: str, report_data: dict[str, Any]) -> Report:
        """Patch a report."""
        envelope = self._request("PATCH", f"/reports/{report_id}", json=report_data)
        return _parse_model(Report, envelope.get_item("report"), resource="report")

    def delete_report(self, report_id: str) -> None:
        """Remove a report."""
        self._request("DELETE", f"/reports/{report_id}")

    def get_organization_stats(self) -> OrganizationStats:
        """Fetch organization-wide totals."""
        envelope = self._request("GET", "/reports/stats/organization")
        payload = envelope.data if isinstance(envelope.data, dict) else {}
        return _parse_model(OrganizationStats, payload, resource="organization stats")
