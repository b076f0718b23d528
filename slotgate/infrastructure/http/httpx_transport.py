"""Concrete implementation of the HttpTransport interface using httpx.

Hides the specifics of the HTTP client library and translates between the
domain's `RequestDescriptor` / `HttpOutcome` and httpx requests/responses.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from slotgate.domain.errors import ConfigurationError, UpstreamHTTPError
from slotgate.domain.interfaces.transport import HttpTransport
from slotgate.domain.models.common import Verb
from slotgate.domain.models.http import HttpOutcome, RequestDescriptor
from slotgate.infrastructure.resilience.rate_limit_estimator import outcome_from_response

logger = logging.getLogger(__name__)


class HttpxTransport(HttpTransport):
    """JSON-over-HTTPS transport bound to one upstream base URL."""

    DEFAULT_TIMEOUT_SECONDS = 30.0

    def __init__(
        self,
        base_url: Optional[str],
        api_token: Optional[str],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_connections: Optional[int] = None,
    ):
        """Initializes the transport.

        Args:
            base_url: Upstream base URL, e.g. https://example.okta.com.
            api_token: API token sent as `Authorization: SSWS <token>`.
            timeout: Per-request timeout in seconds.
            client: Pre-built client to use instead of creating one.
            transport: Optional httpx transport (tests pass `httpx.MockTransport`).
            max_connections: Connection cap; match it to the request pool size so
                requests admitted by the pool never queue inside httpx.
        """
        if client is None:
            if not base_url:
                raise ConfigurationError("Upstream base URL not provided (SLOTGATE_UPSTREAM_BASE_URL).")
            if not api_token:
                raise ConfigurationError("Upstream API token not provided (SLOTGATE_UPSTREAM_API_TOKEN).")
            client = httpx.AsyncClient(
                base_url=base_url,
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                    "Authorization": f"SSWS {api_token}",
                },
                timeout=timeout,
                limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=0),
                transport=transport,
            )
        self.client = client
        logger.info(f"HttpxTransport initialized for {self.client.base_url}")

    async def send(self, verb: Verb, request: RequestDescriptor) -> HttpOutcome:
        kwargs: Dict[str, Any] = {}
        if request.query:
            kwargs["params"] = dict(request.query)
        if request.headers:
            kwargs["headers"] = dict(request.headers)
        if request.body is not None:
            kwargs["json"] = request.body

        response = await self.client.request(Verb(verb).value, request.path, **kwargs)
        outcome = outcome_from_response(response)
        if not outcome.ok:
            logger.debug(f"{verb} {request.path} -> {outcome.status}")
            raise UpstreamHTTPError(Verb(verb).value, request.path, outcome)
        return outcome

    async def aclose(self) -> None:
        await self.client.aclose()
