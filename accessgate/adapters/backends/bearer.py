"""
Bearer-token API backend adapter - Implements BearerIdentityBackend protocol.

Talks to the application's own API over httpx:

- POST /auth/login      -> {access_token, token_type, user?}
- POST /auth/register   -> opaque success payload
- GET  /auth/me         -> identity, or 401
- GET  /users/search    -> operator lookup used by cleanup
- DELETE /users/{id}    -> operator deletion used by cleanup

Response bodies are validated with pydantic at this boundary; anything
malformed becomes BackendUnavailable rather than leaking loose JSON into
the domain. Transport errors and timeouts also map to BackendUnavailable,
so callers get a clear failure instead of a hang.
"""

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from accessgate.domain.exceptions import (
    AlreadyExists,
    BackendUnavailable,
    InvalidCredential,
    NotFound,
    Unauthenticated,
)
from accessgate.domain.models import Identity, Profile

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class BearerUser(BaseModel):
    """User object as returned by the bearer API."""

    model_config = ConfigDict(extra="allow")

    id: str | int
    email: str
    roles: list[str] = []
    is_verified: bool = False

    def to_identity(self, access_token: str | None = None) -> Identity:
        return Identity(
            id=str(self.id),
            email=self.email,
            email_verified=self.is_verified,
            access_token=access_token,
            roles=tuple(self.roles),
        )


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: BearerUser | None = None


class BearerApiBackend:
    """
    Implements BearerIdentityBackend protocol via httpx.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        admin_token: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """
        Args:
            base_url: API root, e.g. https://api.example.com/api/v1
            timeout: Per-request timeout in seconds
            admin_token: Operator token for user search/deletion
            client: Preconfigured client (tests inject a MockTransport)
        """
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._admin_token = admin_token

    def close(self) -> None:
        self._client.close()

    def authenticate(self, email: str, password: str) -> Identity:
        response = self._request(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        if response.status_code in (400, 401, 403, 422):
            raise InvalidCredential(_detail(response))
        self._raise_for_unexpected(response)

        login = self._parse(LoginResponse, response)
        if login.user is not None:
            return login.user.to_identity(access_token=login.access_token)
        return Identity(id=None, email=email, access_token=login.access_token)

    def register(self, profile: Profile, password: str) -> Identity:
        body = {
            "email": profile.email,
            "name": profile.name,
            "password": password,
            "machine_name": profile.machine_name,
            "contradiction_tolerance": profile.contradiction_tolerance,
            "belief_sensitivity": (
                profile.belief_sensitivity.value if profile.belief_sensitivity else "{}"
            ),
        }
        response = self._request("POST", "/auth/register", json=body)

        detail = _detail(response)
        if response.status_code == 409 or (
            response.status_code == 400 and "already" in detail.lower()
        ):
            raise AlreadyExists(detail)
        if response.status_code in (400, 422):
            raise InvalidCredential(detail)
        self._raise_for_unexpected(response)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and "id" in payload and "email" in payload:
            try:
                return BearerUser.model_validate(payload).to_identity()
            except ValidationError:
                pass
        return Identity(id=None, email=profile.email)

    def get_current_identity(self, session_token: str) -> Identity:
        response = self._request("GET", "/auth/me", token=session_token)
        if response.status_code in (401, 403):
            raise Unauthenticated(_detail(response))
        self._raise_for_unexpected(response)
        return self._parse(BearerUser, response).to_identity(access_token=session_token)

    def reset_credential(self, email: str) -> None:
        # The bearer API has no reset endpoint; the managed backend owns passwords.
        logger.info("Credential reset for %s is handled by the managed backend", email)

    def find_identity(self, email: str) -> Identity | None:
        response = self._request(
            "GET", "/users/search", token=self._admin_token, params={"q": email}
        )
        if response.status_code in (401, 403):
            raise Unauthenticated(_detail(response))
        self._raise_for_unexpected(response)

        payload = _json(response)
        if not isinstance(payload, list):
            raise BackendUnavailable("malformed user search response")
        for item in payload:
            try:
                user = BearerUser.model_validate(item)
            except ValidationError:
                continue
            if user.email.lower() == email.lower():
                return user.to_identity()
        return None

    def delete_identity(self, identity_id: str) -> None:
        response = self._request("DELETE", f"/users/{identity_id}", token=self._admin_token)
        if response.status_code == 404:
            raise NotFound(identity_id)
        if response.status_code in (401, 403):
            raise Unauthenticated(_detail(response))
        self._raise_for_unexpected(response)

    def _request(
        self, method: str, path: str, token: str | None = None, **kwargs: Any
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            response = self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"Bearer API {method} {path} failed: {e}")
            raise BackendUnavailable(f"{method} {path}: {e}") from e
        logger.debug(f"Bearer API {method} {path} -> {response.status_code}")
        return response

    def _raise_for_unexpected(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise BackendUnavailable(
                f"{response.request.method} {response.request.url.path} "
                f"returned {response.status_code}: {_detail(response)}"
            )

    def _parse(self, model: type[ModelT], response: httpx.Response) -> ModelT:
        try:
            return model.model_validate(_json(response))
        except ValidationError as e:
            raise BackendUnavailable(f"malformed {model.__name__}: {e}") from e


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise BackendUnavailable(f"non-JSON response ({response.status_code})") from e


def _detail(response: httpx.Response) -> str:
    """Extract FastAPI-style {"detail": ...} or {"message": ...} text."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        detail = payload.get("detail") or payload.get("message") or payload.get("error")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return str(detail)
    return f"HTTP {response.status_code}"
