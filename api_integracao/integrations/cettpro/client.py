"""
CETTPRO partner API client.
"""

import asyncio
import aiohttp
import json
import math
import logging
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urljoin

from api_integracao.integrations.cettpro.errors import (
    AccessDeniedError,
    AuthenticationError,
    DecodeError,
    InvalidRequestError,
    NotFoundError,
    PartnerApiError,
    PartnerTransportError,
    RateLimitError,
    UpstreamServerError,
)
from api_integracao.integrations.cettpro.token_cache import AccessToken, TokenCache


logger = logging.getLogger(__name__)

AUTH_ENDPOINT = "Autenticar"


class PartnerClient:
    """Authenticated JSON client for the CETTPRO REST API.

    Every request carries a fixed total timeout. HTTP statuses are translated
    into the :mod:`errors` taxonomy; a 401 drops the cached token so the next
    call performs a fresh credential exchange.
    """

    def __init__(
        self,
        base_url: str,
        email: str,
        password: str,
        token_cache: Optional[TokenCache] = None,
        timeout_seconds: int = 30,
        rate_limit_fallback_seconds: int = 60
    ):
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.email = email
        self.password = password
        self.token_cache = token_cache or TokenCache()
        self.timeout_seconds = timeout_seconds
        self.rate_limit_fallback_seconds = rate_limit_fallback_seconds
        self._http_session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_settings(cls, settings, token_cache: Optional[TokenCache] = None) -> "PartnerClient":
        return cls(
            base_url=settings.CETTPRO_BASE_URL,
            email=settings.CETTPRO_EMAIL,
            password=settings.CETTPRO_PASSWORD,
            token_cache=token_cache or TokenCache(settings.CETTPRO_TOKEN_EXPIRATION_BUFFER),
            timeout_seconds=settings.CETTPRO_TIMEOUT_SECONDS,
            rate_limit_fallback_seconds=settings.CETTPRO_RATE_LIMIT_FALLBACK_SECONDS,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={
                    'User-Agent': 'API-Integracao-CETTPRO/1.0',
                    'Accept': 'application/json',
                }
            )
        return self._http_session

    async def close(self) -> None:
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    async def authenticate(self) -> str:
        """
        Return a valid bearer token, exchanging credentials if needed.

        Concurrent callers share a single in-flight exchange.

        Returns:
            Bearer token string
        """
        return await self.token_cache.get_or_refresh(self._exchange_credentials)

    def invalidate_token(self) -> None:
        self.token_cache.invalidate()

    async def _exchange_credentials(self) -> AccessToken:
        logger.info(f"Authenticating against CETTPRO as {self.email}")

        data = await self._request(
            'GET',
            AUTH_ENDPOINT,
            params={'Email': self.email, 'Senha': self.password},
            authenticated=False
        )

        if not isinstance(data, dict) or not data.get('access_token'):
            raise AuthenticationError(
                "Credential exchange returned no access token",
                endpoint=AUTH_ENDPOINT
            )

        try:
            expires_in = int(data.get('expires_in') or 0)
        except (TypeError, ValueError) as e:
            raise DecodeError(
                f"Invalid expires_in in token response: {data.get('expires_in')!r}",
                endpoint=AUTH_ENDPOINT,
                original_exception=e
            ) from e

        return AccessToken(
            access_token=data['access_token'],
            expires_in=expires_in,
            token_type=data.get('token_type') or 'Bearer',
            role=data.get('role'),
        )

    async def get(
        self,
        endpoint: str,
        token: Optional[str] = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        collection: bool = False
    ) -> Any:
        """
        GET a partner resource.

        Args:
            endpoint: Path relative to the base URL
            token: Bearer token; obtained via ``authenticate`` when omitted
            params: Query string parameters
            collection: Whether the caller expects a list (404/204 become ``[]``)

        Returns:
            Decoded JSON body, ``None`` for an empty body
        """
        return await self._request('GET', endpoint, params=params, token=token, collection=collection)

    async def send(
        self,
        method: str,
        endpoint: str,
        body: Any,
        token: Optional[str] = None,
        *,
        collection: bool = False
    ) -> Any:
        """
        Send a JSON body to a partner resource (POST, PUT...).

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL
            body: JSON-serializable request body
            token: Bearer token; obtained via ``authenticate`` when omitted
            collection: Whether the caller expects a list

        Returns:
            Decoded JSON body, ``None`` for an empty body
        """
        return await self._request(method.upper(), endpoint, json_body=body, token=token, collection=collection)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        token: Optional[str] = None,
        collection: bool = False,
        authenticated: bool = True
    ) -> Any:
        headers = {}
        if authenticated:
            if token is None:
                token = await self.authenticate()
            headers['Authorization'] = f"Bearer {token}"

        url = urljoin(self.base_url, endpoint.lstrip('/'))
        session = self._ensure_session()

        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers
            ) as response:
                status = response.status
                response_headers = response.headers
                text = await response.text()
        except asyncio.TimeoutError as e:
            raise PartnerTransportError(
                f"Request {method} {endpoint} timed out after {self.timeout_seconds}s",
                endpoint=endpoint,
                original_exception=e
            ) from e
        except aiohttp.ClientError as e:
            raise PartnerTransportError(
                f"Request {method} {endpoint} failed: {e}",
                endpoint=endpoint,
                original_exception=e
            ) from e

        logger.debug(f"{method} {endpoint} -> {status}")
        return self._handle_response(status, response_headers, text, endpoint, collection, authenticated)

    def _handle_response(
        self,
        status: int,
        headers: Mapping[str, str],
        text: str,
        endpoint: str,
        collection: bool,
        authenticated: bool
    ) -> Any:
        if status == 200:
            if not text or not text.strip():
                return [] if collection else None
            try:
                return json.loads(text)
            except ValueError as e:
                raise DecodeError(
                    f"Invalid JSON from {endpoint}: {e}",
                    endpoint=endpoint,
                    status_code=status,
                    original_exception=e
                ) from e

        if status == 204:
            return [] if collection else None

        if status == 401:
            if authenticated:
                self.invalidate_token()
            raise AuthenticationError(
                f"Partner rejected credentials for {endpoint}",
                endpoint=endpoint,
                status_code=status
            )

        if status == 403:
            raise AccessDeniedError(f"Access denied to {endpoint}", endpoint=endpoint, status_code=status)

        if status == 404:
            if collection:
                return []
            raise NotFoundError(f"Resource not found: {endpoint}", endpoint=endpoint, status_code=status)

        if status == 400:
            raise InvalidRequestError(
                f"Invalid request to {endpoint}: {text}",
                response_body=text,
                endpoint=endpoint,
                status_code=status
            )

        if status == 429:
            retry_after = self._parse_retry_after(headers.get('Retry-After'))
            raise RateLimitError(
                f"Rate limit exceeded on {endpoint}, retry after {retry_after}s",
                retry_after=retry_after,
                endpoint=endpoint,
                status_code=status
            )

        if 500 <= status < 600:
            raise UpstreamServerError(
                f"Partner server error {status} on {endpoint}",
                endpoint=endpoint,
                status_code=status
            )

        raise PartnerApiError(
            f"Unexpected status {status} from {endpoint}",
            endpoint=endpoint,
            status_code=status,
            details={'response_body': text}
        )

    def _parse_retry_after(self, value: Optional[str]) -> float:
        """Seconds to wait, from delta-seconds or HTTP-date; fallback when absent."""
        if not value:
            return float(self.rate_limit_fallback_seconds)

        try:
            seconds = float(value)
        except ValueError:
            pass
        else:
            # "inf" and "nan" parse as floats but are not delays
            if not math.isfinite(seconds):
                return float(self.rate_limit_fallback_seconds)
            return max(0.0, seconds)

        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return float(self.rate_limit_fallback_seconds)

        if retry_at.tzinfo is not None:
            retry_at = retry_at.replace(tzinfo=None) - retry_at.utcoffset()
        return max(0.0, (retry_at - datetime.utcnow()).total_seconds())
