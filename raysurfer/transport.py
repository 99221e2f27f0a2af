"""Transport: one logical JSON request to the Raysurfer API, with classified retries.

Knows nothing about caching. 401 and caller timeouts fail immediately;
429, 5xx and connection failures (connect and pool timeouts included) are
retried with exponential backoff (or the server's ``Retry-After`` hint for 429).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime

import httpx

from .types import (
    ApiError,
    AuthenticationFailure,
    RateLimited,
    RaysurferConfig,
    ServiceUnavailable,
    Timeout,
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

MAX_RETRIES = 3
BACKOFF_BASE = 1.0
RETRYABLE_STATUS = frozenset({500, 502, 503, 504})


@dataclass
class RequestAttempt:
    """Bookkeeping for one ``send`` call; never outlives it."""
    number: int = 0
    backoff_elapsed: float = 0.0
    outcome: str = ""


def _parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, when.timestamp() - time.time())


class Transport:
    """Async HTTP transport shared by every API call."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = BACKOFF_BASE,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._extra_headers = dict(headers or {})
        self._owns_client = client is None
        # No client-level timeout: the per-attempt wait_for deadline is the only one
        self._client = client or httpx.AsyncClient(timeout=None)

    @classmethod
    def from_config(
        cls,
        config: RaysurferConfig,
        client: httpx.AsyncClient | None = None,
    ) -> Transport:
        ns = config.namespace
        headers: dict[str, str] = {}
        if ns.organization_id:
            headers["X-Raysurfer-Org-Id"] = ns.organization_id
        if ns.workspace_id:
            headers["X-Raysurfer-Workspace-Id"] = ns.workspace_id
        if ns.public_snips:
            headers["X-Raysurfer-Public-Snips"] = "true"
        if ns.snips_desired:
            headers["X-Raysurfer-Snips-Desired"] = ns.snips_desired
        if ns.name:
            headers["X-Raysurfer-Namespace"] = ns.name
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=config.api.timeout,
            max_retries=config.api.max_retries,
            backoff_base=config.api.backoff_base,
            headers=headers,
            client=client,
        )

    # -- headers / delays --

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(self._extra_headers)
        headers["X-Raysurfer-SDK-Version"] = f"python/{VERSION}"
        return headers

    def _backoff(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)

    def retry_delay(self, attempt: int, response: httpx.Response | None = None) -> float:
        """Delay before retry *attempt* (0-based): Retry-After on 429, else backoff."""
        if response is not None and response.status_code == 429:
            hint = _parse_retry_after(response.headers.get("retry-after"))
            if hint is not None:
                return hint
        return self._backoff(attempt)

    # -- request loop --

    async def send(self, method: str, path: str, body: dict | None = None) -> dict:
        """Issue one logical request. Returns the decoded JSON object."""
        url = f"{self.base_url}{path}"
        headers = self._headers()
        attempt = RequestAttempt()

        while True:
            response: httpx.Response | None = None
            try:
                # Per-attempt deadline; wait_for tears it down on every exit path
                response = await asyncio.wait_for(
                    self._client.request(method, url, headers=headers, json=body),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                attempt.outcome = "timeout"
                raise Timeout(
                    f"{method} {path} exceeded the {self.timeout}s deadline"
                ) from e
            except (httpx.ReadTimeout, httpx.WriteTimeout) as e:
                # Raised by an injected client configured with its own timeouts
                attempt.outcome = "timeout"
                raise Timeout(f"{method} {path} timed out in the HTTP client: {e}") from e
            except httpx.TransportError as e:
                # Includes ConnectTimeout and PoolTimeout: nothing reached the server
                attempt.outcome = "connection_error"
                if attempt.number >= self.max_retries:
                    raise ServiceUnavailable(
                        f"Connection failed after {attempt.number + 1} attempts: {e}",
                    ) from e
                reason = f"connection error: {e}"
            except httpx.RequestError as e:
                # DecodingError, TooManyRedirects
                attempt.outcome = "api_error"
                raise ApiError(f"{method} {path} failed: {e}") from e
            else:
                status = response.status_code
                if 200 <= status < 300:
                    attempt.outcome = "ok"
                    return self._decode(response)

                text = response.text
                if status == 401:
                    attempt.outcome = "unauthorized"
                    raise AuthenticationFailure(body=text)

                if status == 429:
                    attempt.outcome = "rate_limited"
                    if attempt.number >= self.max_retries:
                        raise RateLimited(
                            f"Rate limited after {attempt.number + 1} attempts",
                            retry_after=_parse_retry_after(response.headers.get("retry-after")),
                            body=text,
                        )
                elif status in RETRYABLE_STATUS:
                    attempt.outcome = "unavailable"
                    if attempt.number >= self.max_retries:
                        raise ServiceUnavailable(
                            f"HTTP {status} after {attempt.number + 1} attempts: {text}",
                            status_code=status,
                            body=text,
                        )
                else:
                    attempt.outcome = "api_error"
                    raise ApiError(f"HTTP {status}: {text}", status_code=status, body=text)
                reason = f"HTTP {status}"

            delay = self.retry_delay(attempt.number, response)
            logger.warning(
                "%s %s failed (%s), retry %d/%d in %.2fs",
                method, path, reason, attempt.number + 1, self.max_retries, delay,
            )
            await asyncio.sleep(delay)
            attempt.backoff_elapsed += delay
            attempt.number += 1

    @staticmethod
    def _decode(response: httpx.Response) -> dict:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(
                f"Invalid JSON response: {response.text[:200]}",
                status_code=response.status_code,
                body=response.text,
            ) from e
        return data if isinstance(data, dict) else {"data": data}

    # -- lifecycle --

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
