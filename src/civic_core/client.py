"""HTTP transport for the civic-services platform.

A ``DigitClient`` owns one ``httpx.AsyncClient`` and one access token. It is
created per session and passed around explicitly; there is no module-level
client.
"""
import logging
import time
from typing import Any, Optional

import httpx

from .config import Settings
from .errors import AuthenticationError, MalformedResponseError
from .schemas import Principal

logger = logging.getLogger("civic-core.client")


class ApiClientError(Exception):
    """Raised for non-2xx responses or bodies carrying an ``Errors`` array."""

    def __init__(self, errors: list[dict], status_code: int):
        message = ", ".join(str(e.get("message") or e.get("code") or e) for e in errors)
        super().__init__(message or f"Request failed: {status_code}")
        self.errors = errors
        self.status_code = status_code


class DigitClient:
    """Authenticated JSON-over-POST client for the platform services."""

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(base_url=settings.api_url, timeout=settings.request_timeout)
        self.auth_token: Optional[str] = None
        self.user: Optional[Principal] = None
        self.login_tenant: Optional[str] = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    @property
    def is_authenticated(self) -> bool:
        return self.auth_token is not None

    def request_info(self) -> dict[str, Any]:
        now = int(time.time() * 1000)
        info: dict[str, Any] = {
            "apiId": "Rainmaker",
            "ver": "1.0",
            "ts": now,
            "msgId": f"{now}|en_IN",
            "authToken": self.auth_token or "",
        }
        if self.user is not None:
            info["userInfo"] = self.user.model_dump(by_alias=True, exclude_none=True)
        return info

    async def login(self, username: str, password: str, tenant_id: str) -> Principal:
        """Obtain an access token with the OAuth password grant.

        Raises:
            AuthenticationError: If the platform rejects the credentials
        """
        form = {
            "username": username,
            "password": password,
            "userType": "EMPLOYEE",
            "tenantId": tenant_id,
            "scope": "read",
            "grant_type": "password",
        }
        auth = httpx.BasicAuth(self.settings.oauth_client_id, self.settings.oauth_client_secret)
        try:
            response = await self.http.post(self.settings.endpoint("AUTH"), data=form, auth=auth)
        except httpx.RequestError as e:
            raise AuthenticationError(f"Connection failed - {e}", [tenant_id]) from e

        if response.status_code >= 400:
            try:
                body = response.json()
                detail = body.get("error_description") or body.get("message")
            except ValueError:
                detail = None
            raise AuthenticationError(detail or f"Login failed: {response.status_code}", [tenant_id])

        body = response.json()
        self.auth_token = body["access_token"]
        self.user = Principal.model_validate(body.get("UserRequest") or {"userName": username})
        self.login_tenant = tenant_id
        logger.info(f"Authenticated as {username} on tenant {tenant_id}")
        return self.user

    async def post(
        self,
        endpoint: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        suffix: str = "",
    ) -> dict[str, Any]:
        """POST ``body`` (with RequestInfo) to a named endpoint and return the JSON body.

        Args:
            endpoint: Key into the endpoint table
            body: Request payload, RequestInfo is added
            params: Query parameters
            suffix: Extra path segment, e.g. ``/<schemaCode>``

        Raises:
            ApiClientError: Service rejected the request
            MalformedResponseError: Body is not a JSON object
            httpx.RequestError: Network failure
        """
        payload = {"RequestInfo": self.request_info(), **(body or {})}
        headers = {"Authorization": f"Bearer {self.auth_token}"} if self.auth_token else {}
        path = f"{self.settings.endpoint(endpoint)}{suffix}"
        response = await self.http.post(path, json=payload, params=params, headers=headers)

        try:
            data = response.json()
        except ValueError:
            if response.status_code >= 400:
                raise ApiClientError(
                    [{"code": f"HTTP_{response.status_code}", "message": response.text or f"Request failed: {response.status_code}"}],
                    response.status_code,
                )
            raise MalformedResponseError(f"{path} returned a non-JSON body", response.text)

        if not isinstance(data, dict):
            if response.status_code >= 400:
                raise ApiClientError([{"message": str(data)}], response.status_code)
            raise MalformedResponseError(f"{path} returned {type(data).__name__}, expected object", data)

        errors = data.get("Errors") or []
        if response.status_code >= 400 or errors:
            if not errors:
                errors = [{
                    "code": f"HTTP_{response.status_code}",
                    "message": data.get("message") or f"Request failed: {response.status_code}",
                }]
            logger.debug(f"{path} failed with {response.status_code}: {errors}")
            raise ApiClientError(errors, response.status_code)

        return data
