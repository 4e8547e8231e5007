# REST client wrapper: auth header, cache-busting, retries, uniform results
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import requests

from api.errors import (
    AUTH_ERROR,
    NETWORK_ERROR,
    NETWORK_MESSAGE,
    ApiRequestError,
    error_kind_for,
    error_message_for,
)
from utils.logger import get_logger

_logger = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]
UnauthorizedHandler = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class ApiRequest:
    """Description of one REST call, built by the functions in api.endpoints."""

    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Optional[Dict[str, Any]] = None
    auth: bool = True


@dataclass(frozen=True)
class ApiResult:
    success: bool
    status: int
    data: Any = None
    message: str = ""
    error_kind: Optional[str] = None
    attempts: int = 1

    @property
    def retries(self) -> int:
        return self.attempts - 1

    @property
    def payload(self) -> Any:
        """
        The useful part of a `{success, data: {...}}` envelope, or the raw body
        when the server answered without one.
        """
        if isinstance(self.data, dict) and "data" in self.data:
            return self.data["data"]
        return self.data

    def raise_for_error(self) -> ApiResult:
        if not self.success:
            raise ApiRequestError(self.message, self.status, self.error_kind or "api")
        return self


class ApiClient:
    """
    Thin async wrapper over a requests.Session.

    Every call returns an ApiResult; nothing but programming errors escape.
    Network failures and 5xx responses are retried `retry_attempts` times with
    a fixed delay. A 401 is never retried: the injected `on_unauthorized`
    callback runs (it clears the persisted session) and the failure is returned.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: Optional[TokenProvider] = None,
        on_unauthorized: Optional[UnauthorizedHandler] = None,
        timeout: float = 60.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.on_unauthorized = on_unauthorized
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    async def call(self, api_function: Callable[..., ApiRequest], *args, **kwargs) -> ApiResult:
        """Build a request with one of the api.endpoints functions and perform it."""
        return await self.send(api_function(*args, **kwargs))

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResult:
        return await self.send(ApiRequest("GET", path, params=params))

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> ApiResult:
        return await self.send(ApiRequest("POST", path, json=json))

    async def put(self, path: str, json: Optional[Dict[str, Any]] = None) -> ApiResult:
        return await self.send(ApiRequest("PUT", path, json=json))

    async def _headers(self, request: ApiRequest) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if request.auth and self.token_provider is not None:
            token = await self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    def _params(self, request: ApiRequest) -> Dict[str, Any]:
        params = dict(request.params or {})
        if request.method.upper() == "GET":
            params["_t"] = int(time.time() * 1000)
        return params

    async def send(self, request: ApiRequest) -> ApiResult:
        url = f"{self.base_url}/{request.path.lstrip('/')}"
        headers = await self._headers(request)
        max_attempts = self.retry_attempts + 1
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await asyncio.to_thread(
                    self._session.request,
                    request.method,
                    url,
                    params=self._params(request),
                    json=request.json,
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                _logger.warning(
                    f"{request.method} {request.path} failed ({exc.__class__.__name__}), "
                    f"attempt {attempt}/{max_attempts}"
                )
                if attempt < max_attempts:
                    await asyncio.sleep(self.retry_delay)
                    continue
                return ApiResult(
                    success=False,
                    status=0,
                    message=NETWORK_MESSAGE,
                    error_kind=NETWORK_ERROR,
                    attempts=attempt,
                )

            status = response.status_code
            body = _decode_body(response)

            if status < 400:
                _logger.debug(f"{request.method} {request.path} -> {status}")
                return ApiResult(success=True, status=status, data=body, attempts=attempt)

            if status == 401:
                _logger.warning(f"{request.method} {request.path} unauthorized, dropping session")
                if self.on_unauthorized is not None:
                    await self.on_unauthorized()
                return ApiResult(
                    success=False,
                    status=status,
                    data=body,
                    message=error_message_for(status, body),
                    error_kind=AUTH_ERROR,
                    attempts=attempt,
                )

            if status >= 500 and attempt < max_attempts:
                _logger.warning(
                    f"{request.method} {request.path} -> {status}, "
                    f"retrying in {self.retry_delay}s ({attempt}/{max_attempts})"
                )
                await asyncio.sleep(self.retry_delay)
                continue

            _logger.error(f"API Error {status} on {request.method} {request.path}")
            return ApiResult(
                success=False,
                status=status,
                data=body,
                message=error_message_for(status, body),
                error_kind=error_kind_for(status, body),
                attempts=attempt,
            )


def _decode_body(response) -> Any:
    try:
        return response.json()
    except ValueError:
        text = getattr(response, "text", "")
        return {"message": text} if text else None
