"""Interface for the HTTP transport the scheduler delegates to.

Defines the contract for sending one request to the upstream service and
returning its canonical outcome.
"""

import abc

from slotgate.domain.models.common import Verb
from slotgate.domain.models.http import HttpOutcome, RequestDescriptor


class HttpTransport(abc.ABC):
    """Abstract Base Class for upstream HTTP access."""

    @abc.abstractmethod
    async def send(self, verb: Verb, request: RequestDescriptor) -> HttpOutcome:
        """Sends a request asynchronously and returns its outcome.

        Args:
            verb: The HTTP verb.
            request: Path, query, body and extra headers, used as given.

        Returns:
            The outcome of a 2xx response, with the JSON body parsed.

        Raises:
            UpstreamHTTPError: If the service answers with a non-2xx status.
            Exception: Network failures, propagated unchanged.
        """
        pass

    async def aclose(self) -> None:
        """Releases network resources held by the transport."""
        return None
