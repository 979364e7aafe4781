# storefront/core/api_client.py
import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from storefront.core.errors import (
    ApiError,
    TransportError,
    UnauthorizedError,
    extract_error_message,
)
from storefront.schemas.cart import ApiEnvelope

logger = logging.getLogger(__name__)

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class ApiClient:
    """
    Thin async wrapper over httpx for the storefront API.

    Responsibilities:
      - attach the bearer credential (and fail fast when there is none)
      - echo the CSRF cookie as a header on mutating requests
      - map failures to the error taxonomy:
          * connection problems       => TransportError
          * HTTP 401                  => UnauthorizedError
          * any other non-2xx status  => ApiError
      - return the response envelope on success

    There is no refresh/retry and no application-level timeout: a 401 is
    propagated, and timeouts are the transport's own.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None],
        *,
        csrf_cookie_name: str = "sg_csrf",
        csrf_header_name: str = "X-CSRF-Token",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_provider = token_provider
        self.csrf_cookie_name = csrf_cookie_name
        self.csrf_header_name = csrf_header_name

        client_kwargs: dict[str, Any] = {"base_url": base_url}
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport
        self.http = httpx.AsyncClient(**client_kwargs)

    async def aclose(self) -> None:
        await self.http.aclose()

    # ---- internal helpers ----

    def _headers(self, method: str, auth: bool) -> dict[str, str]:
        headers: dict[str, str] = {}

        if auth:
            token = (self.token_provider() or "").strip()
            if not token:
                raise UnauthorizedError("Authentication required")
            headers["Authorization"] = f"Bearer {token}"

        if method in MUTATING_METHODS:
            # Re-read per request: the server may rotate the cookie.
            csrf_token = self.http.cookies.get(self.csrf_cookie_name)
            if csrf_token:
                headers[self.csrf_header_name] = csrf_token

        return headers

    # ---- public operations ----

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        auth: bool = True,
    ) -> ApiEnvelope:
        """
        Send one request and return its envelope.

        Raises:
            UnauthorizedError: no credential, or HTTP 401.
            TransportError: network failure or a non-envelope body.
            ApiError: any other non-success status.
        """
        method = method.upper()
        headers = self._headers(method, auth)

        try:
            response = await self.http.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(str(exc) or "Network error") from exc

        payload = _safe_json(response)

        if response.status_code == 401:
            raise UnauthorizedError(
                extract_error_message(payload, "Authentication required"),
                payload,
            )

        if not response.is_success:
            raise ApiError(
                extract_error_message(payload),
                response.status_code,
                payload,
            )

        if payload is None:
            return ApiEnvelope()

        if not isinstance(payload, dict):
            raise TransportError("Malformed response", payload)

        try:
            return ApiEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise TransportError("Malformed response", payload) from exc

    async def get(self, path: str, **kwargs: Any) -> ApiEnvelope:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: Any, **kwargs: Any) -> ApiEnvelope:
        return await self.request("POST", path, json=json, **kwargs)

    async def patch(self, path: str, json: Any, **kwargs: Any) -> ApiEnvelope:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ApiEnvelope:
        return await self.request("DELETE", path, **kwargs)
