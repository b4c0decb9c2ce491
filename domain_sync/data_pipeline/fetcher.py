"""
domain-sync — Domain intelligence provider client.

Wraps the single HTTP call that retrieves current truth for one domain.
Handles timeouts and bounded retries, and converts every failure into an
``UpstreamError`` so the job queue can mark the job failed.

Usage::

    fetcher = DomainInfoFetcher()
    snapshot = await fetcher.fetch("example.com")
    await fetcher.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from domain_sync import config
from domain_sync.core.errors import UpstreamError
from domain_sync.data_pipeline.normalizer import parse_snapshot
from domain_sync.domain.models import DomainSnapshot

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class DomainInfoFetcher:
    """Async HTTP client for the domain intelligence provider.

    The internal httpx.AsyncClient is lazily created and reused across
    calls; pass ``client`` to inject one (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url if url is not None else config.DOMAIN_INFO_URL
        self.api_key = api_key if api_key is not None else config.DOMAIN_INFO_KEY
        self.timeout = timeout if timeout is not None else config.FETCH_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else config.FETCH_MAX_RETRIES
        self.backoff = backoff if backoff is not None else config.FETCH_RETRY_BACKOFF_SECONDS
        self._client = client

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _client_get(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _post(self, domain: str) -> dict:
        client = await self._client_get()
        headers = {"Authorization": f"Basic {self.api_key}"}
        delay = self.backoff
        attempts = max(0, self.max_retries) + 1
        last_error = "no attempt made"

        for attempt in range(1, attempts + 1):
            try:
                resp = await client.post(
                    self.url, json={"domain": domain}, headers=headers, timeout=self.timeout,
                )
                if resp.status_code in _RETRYABLE_STATUS and attempt < attempts:
                    logger.warning(
                        "Provider HTTP %s for %s; retry %d/%d in %.1fs",
                        resp.status_code, domain, attempt, attempts - 1, delay,
                    )
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as exc:
                raise UpstreamError(
                    f"Provider returned HTTP {exc.response.status_code} for {domain}"
                ) from exc
            except httpx.TimeoutException as exc:
                last_error = f"timed out after {self.timeout:.1f}s"
                if attempt < attempts:
                    logger.warning("Provider timeout for %s; retry %d/%d", domain, attempt, attempts - 1)
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                raise UpstreamError(f"Provider {last_error} for {domain}") from exc
            except httpx.TransportError as exc:
                last_error = str(exc) or type(exc).__name__
                if attempt < attempts:
                    logger.warning(
                        "Provider request failed for %s (%s); retry %d/%d",
                        domain, last_error, attempt, attempts - 1,
                    )
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                raise UpstreamError(f"Provider request failed for {domain}: {last_error}") from exc
            except ValueError as exc:
                raise UpstreamError(f"Provider returned invalid JSON for {domain}") from exc

        raise UpstreamError(f"Provider request failed for {domain}: {last_error}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, domain: str) -> DomainSnapshot:
        """Fetch and validate the current snapshot for ``domain``.

        Raises ``UpstreamError`` on missing configuration, non-2xx responses,
        timeouts and malformed payloads.
        """
        if not self.url or not self.api_key:
            raise UpstreamError("Domain info provider is not configured")

        payload = await self._post(domain)
        return parse_snapshot(domain, payload)

    async def close(self) -> None:
        """Cleanly close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
