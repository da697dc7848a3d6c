"""Clients the scan coordinator uses to reach the resolution cascade."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx

from .errors import ConfigError, ExpiryScanError, InputError, UpstreamError
from .models import AnalysisResult, ScanInput

if TYPE_CHECKING:
    from .resolver import ProductResolver

logger = logging.getLogger(__name__)


class ResolverClient(ABC):
    """Abstract access to the resolution cascade."""

    @abstractmethod
    async def analyze(self, code: str) -> AnalysisResult:
        """Resolve a code.

        Raises:
            InputError: The code was rejected.
            ConfigError: The resolver is not configured.
            UpstreamError: The resolver or its provider could not be reached.
        """
        ...


class LocalResolverClient(ResolverClient):
    """Runs the cascade in-process."""

    def __init__(self, resolver: ProductResolver) -> None:
        self._resolver = resolver

    async def analyze(self, code: str) -> AnalysisResult:
        resolution = await self._resolver.resolve(ScanInput(code=code))
        return resolution.result


class HttpResolverClient(ResolverClient):
    """Calls a remote ``POST /analyze-product`` endpoint.

    Args:
        endpoint_url: Base URL of the resolution service.
        api_key: Sent as ``apikey`` and bearer authorization when set.
        timeout: Transport timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint_url:
            raise ConfigError("Resolution endpoint URL is not configured")
        self._url = endpoint_url.rstrip("/") + "/analyze-product"
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["apikey"] = self._api_key
        return headers

    async def analyze(self, code: str) -> AnalysisResult:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout), transport=self._transport
            ) as client:
                resp = await client.post(
                    self._url, json={"code": code}, headers=self._headers()
                )
        except httpx.RequestError as e:
            raise UpstreamError(
                f"Resolution endpoint unreachable: {e.__class__.__name__}"
            ) from e

        if resp.status_code == 200:
            try:
                return AnalysisResult.from_dict(resp.json())
            except (KeyError, TypeError, ValueError) as e:
                raise ExpiryScanError(
                    f"Malformed response from resolution endpoint: {e}"
                ) from e

        payload = _error_payload(resp)
        message = str(payload.get("error") or f"HTTP {resp.status_code}")
        logger.warning(
            "Resolution endpoint returned %d: %s", resp.status_code, message
        )

        if resp.status_code == 400:
            raise InputError(message)
        if payload.get("code") == "not_configured":
            raise ConfigError(message)
        raise UpstreamError(message)


def _error_payload(resp: httpx.Response) -> dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
