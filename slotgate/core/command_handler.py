"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the
work to the request scheduler or the reset service, reporting results and
failures through the user interface.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from slotgate.core.request_scheduler import RequestScheduler
from slotgate.core.services.reset_service import ResetService, ResetSummary
from slotgate.domain.errors import ApiError, SlotgateError
from slotgate.domain.interfaces.user_interface import UserInterface
from slotgate.domain.models.common import Verb
from slotgate.domain.models.http import RequestDescriptor

logger = logging.getLogger(__name__)


def parse_query(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turns ["k=v", ...] into a dict; raises ValueError on a pair without '='."""
    query: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Query parameter must look like key=value, got '{pair}'")
        query[key] = value
    return query


class CommandHandler:
    """Handles incoming commands and delegates to the appropriate services."""

    def __init__(self, scheduler: RequestScheduler, reset_service: ResetService, ui: UserInterface):
        self.scheduler = scheduler
        self.reset_service = reset_service
        self.ui = ui

    async def handle_reset(self) -> Optional[ResetSummary]:
        """Handles the 'reset' command."""
        logger.info("Handling 'reset' command.")
        try:
            summary = await self.reset_service.run()
        except Exception as e:
            logger.error(f"Reset command failed: {e}", exc_info=True)
            self.ui.display_error(f"Reset failed: {e}")
            return None
        finally:
            await self.scheduler.aclose()
        self.ui.display_table("Reset summary", ["Step", "Found", "Deleted", "Skipped", "Failed"], summary.as_rows())
        self.ui.display_info(f"Finished in {summary.elapsed_seconds:.1f}s")
        return summary

    async def handle_request(self, verb: str, path: str, query: Optional[List[str]] = None,
                             body: Optional[str] = None) -> bool:
        """Handles the 'request' command: one throttled call, JSON result displayed.

        Returns:
            True if the call succeeded.
        """
        logger.info(f"Handling 'request' command: {verb} {path}")
        try:
            request = RequestDescriptor(
                path=path,
                query=parse_query(query) or None,
                body=json.loads(body) if body else None,
            )
            result = await self.scheduler.request(Verb(verb.upper()), request)
        except ValueError as e:
            self.ui.display_error(f"Invalid request: {e}")
            return False
        except SlotgateError as e:
            self.ui.display_error(str(ApiError(f"{verb.upper()} {path} failed", e)))
            return False
        except Exception as e:
            logger.error(f"Request command failed: {e}", exc_info=True)
            self.ui.display_error(str(ApiError(f"{verb.upper()} {path} failed", e)))
            return False
        finally:
            await self.scheduler.aclose()
        self.ui.display_json(result)
        return True
