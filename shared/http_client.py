"""
Outbound HTTP client with per-attempt logging, timeouts and retries.
"""

import time
from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, retry_call


class RetryingHTTPClient:
    """``httpx.AsyncClient`` wrapper used for every call to remote services.

    Each attempt raises for non-2xx statuses so that ``retry_call`` can
    classify it; the caller receives the successful ``httpx.Response``, the
    first non-retryable ``httpx.HTTPStatusError``, or ``RetryExhaustedError``.
    """

    def __init__(self,
                 base_url: str = "",
                 *,
                 timeout: float = 10.0,
                 retry_config: Optional[RetryConfig] = None,
                 headers: Optional[Dict[str, str]] = None,
                 name: str = "http_client",
                 metrics: Optional[MetricsCollector] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.name = name
        self.metrics = metrics
        self.logger = get_logger(f"gateway.{name}")
        default_headers = {"Content-Type": "application/json"}
        default_headers.update(headers or {})
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=default_headers,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transient failures."""
        method = method.upper()

        async def _attempt() -> httpx.Response:
            return await self._send_once(method, url, **kwargs)

        return await retry_call(_attempt, self.retry_config, operation=f"{self.name}.{method.lower()}")

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def _send_once(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        start = time.perf_counter()
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            self.logger.error(
                "HTTP request error",
                method=method,
                url=url,
                error=str(e) or e.__class__.__name__,
                duration_ms=duration_ms
            )
            self._record(method, "network_error", duration_ms)
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        if response.is_error:
            self.logger.error(
                "HTTP response error",
                method=method,
                url=url,
                status_code=response.status_code,
                duration_ms=duration_ms
            )
            self._record(method, str(response.status_code), duration_ms)
            response.raise_for_status()

        self.logger.info(
            "HTTP response",
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=duration_ms
        )
        self._record(method, str(response.status_code), duration_ms)
        return response

    def _record(self, method: str, outcome: str, duration_ms: float) -> None:
        if self.metrics is None:
            return
        self.metrics.increment_counter("outbound_requests_total", method=method, outcome=outcome)
        self.metrics.get_metric("outbound_request_duration_seconds").labels(method=method).observe(
            duration_ms / 1000
        )
