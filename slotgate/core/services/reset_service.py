"""Reset Service: wipes an identity tenant back to an empty state.

Deletes, in order, custom user-schema properties, groups, users,
deprovisioned users, OAuth clients, authorization servers, password
policies, identity providers and IdP signing keys. Every request goes
through the shared `RequestScheduler`; the number of items processed at once
is bounded separately by the transaction pool, since one item (deactivate
then delete a user) can take more than one request.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from slotgate.core.request_scheduler import RequestScheduler
from slotgate.domain.errors import ApiError, EachError
from slotgate.domain.interfaces.user_interface import UserInterface
from slotgate.infrastructure.resilience.concurrency_pool import ConcurrencyPool

logger = logging.getLogger(__name__)

# Default (and max) page size for user listings. A shorter page is the last one.
USER_PAGE_SIZE = 200
SCHEMA_PATH = "/api/v1/meta/schemas/user/default"
DEPROVISIONED_FILTER = 'status eq "DEPROVISIONED"'


@dataclass
class StepResult:
    """Counts for one reset step."""
    name: str
    found: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    error: Optional[str] = None


@dataclass
class ResetSummary:
    steps: List[StepResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def deleted(self) -> int:
        return sum(s.deleted for s in self.steps)

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.steps) + sum(1 for s in self.steps if s.error)

    def as_rows(self) -> List[Dict[str, Any]]:
        return [
            {"Step": s.name, "Found": s.found, "Deleted": s.deleted, "Skipped": s.skipped,
             "Failed": s.failed if not s.error else f"{s.failed} + step error"}
            for s in self.steps
        ]


class ResetService:
    """Runs the reset job against the upstream tenant."""

    def __init__(
        self,
        scheduler: RequestScheduler,
        pool: ConcurrencyPool,
        ui: UserInterface,
        policy_pool: Optional[ConcurrencyPool] = None,
    ):
        """Initializes the ResetService.

        Args:
            scheduler: Throttled access to the upstream API.
            pool: Transaction pool bounding how many items are processed at once.
            ui: Where section headers and the step outcome are shown.
            policy_pool: Pool for password policy deletes. The upstream answers
                500 when several are deleted concurrently, so it defaults to size 1.
        """
        self.scheduler = scheduler
        self.pool = pool
        self.ui = ui
        self.policy_pool = policy_pool or ConcurrencyPool(1, strict=pool.strict, name="password-policies")

    async def run(self) -> ResetSummary:
        """Runs every step in order. A failing step is logged and the next one runs."""
        summary = ResetSummary()
        started = time.perf_counter()
        steps: List[Callable[[StepResult], Awaitable[None]]] = [
            self.delete_custom_schema,
            self.delete_groups,
            self.delete_users,
            self.delete_deprovisioned_users,
            self.delete_clients,
            self.delete_authorization_servers,
            self.delete_password_policies,
            self.delete_idps,
            self.delete_idp_keys,
        ]
        for step in steps:
            result = StepResult(name=step.__name__.replace("delete_", "").replace("_", " "))
            summary.steps.append(result)
            try:
                await step(result)
            except Exception as e:
                result.error = str(e)
                logger.error(str(ApiError(f"Step '{result.name}' aborted", e)))
        summary.elapsed_seconds = time.perf_counter() - started
        self.ui.display_header("Done")
        logger.info(f"Reset finished in {summary.elapsed_seconds:.1f}s: {summary.deleted} deleted, {summary.failed} failed")
        return summary

    async def delete_custom_schema(self, result: StepResult) -> None:
        self.ui.display_header("Deleting custom schema")
        schema = await self.scheduler.get(SCHEMA_PATH)
        props = list(((schema or {}).get("definitions", {}).get("custom", {}).get("properties") or {}).keys())
        result.found = len(props)
        if not props:
            logger.info("No custom properties to delete")
            return
        logger.info(f"Deleting {len(props)} custom properties")
        body = {
            "definitions": {
                "custom": {
                    "id": "#custom",
                    "type": "object",
                    "properties": {prop: None for prop in props},
                }
            }
        }
        try:
            await self.scheduler.post(SCHEMA_PATH, body=body)
            result.deleted = len(props)
            logger.info(f"Deleted {len(props)} custom properties")
        except Exception as e:
            result.failed = len(props)
            logger.error(str(ApiError("Error deleting custom properties", e)))

    async def delete_groups(self, result: StepResult) -> None:
        self.ui.display_header("Deleting groups")
        groups = await self.scheduler.get("/api/v1/groups")
        logger.info(f"Found {len(groups)} groups")
        result.found = len(groups)

        async def delete(group: Dict[str, Any]) -> None:
            label = f"group id={group['id']} name={group.get('profile', {}).get('name')}"
            if group.get("type") == "BUILT_IN":
                result.skipped += 1
                logger.info(f"Skipping {label}")
                return
            await self._delete_one(result, f"/api/v1/groups/{group['id']}", label)

        await self._each(self.pool, groups, delete)

    async def delete_users(self, result: StepResult) -> None:
        self.ui.display_header("Deleting users")

        async def delete(user: Dict[str, Any]) -> None:
            label = f"user id={user['id']} login={user.get('profile', {}).get('login')}"
            try:
                await self.scheduler.post(f"/api/v1/users/{user['id']}/lifecycle/deactivate")
                await self.scheduler.delete(f"/api/v1/users/{user['id']}")
                result.deleted += 1
                logger.info(f"Deleted {label}")
            except Exception as e:
                result.failed += 1
                logger.error(str(ApiError(f"Error deleting {label}", e)))

        await self._paged(result, "/api/v1/users", None, "users", delete)

    async def delete_deprovisioned_users(self, result: StepResult) -> None:
        self.ui.display_header("Deleting deprovisioned users")

        async def delete(user: Dict[str, Any]) -> None:
            label = f"user id={user['id']} login={user.get('profile', {}).get('login')}"
            await self._delete_one(result, f"/api/v1/users/{user['id']}", label)

        await self._paged(result, "/api/v1/users", {"filter": DEPROVISIONED_FILTER}, "deprovisioned users", delete)

    async def delete_clients(self, result: StepResult) -> None:
        self.ui.display_header("Deleting OAuth Clients")
        clients = await self.scheduler.get("/oauth2/v1/clients")
        logger.info(f"Found {len(clients)} clients")
        result.found = len(clients)

        async def delete(client: Dict[str, Any]) -> None:
            label = f"OAuth client id={client['client_id']} name={client.get('client_name')}"
            await self._delete_one(result, f"/oauth2/v1/clients/{client['client_id']}", label)

        await self._each(self.pool, clients, delete)

    async def delete_authorization_servers(self, result: StepResult) -> None:
        self.ui.display_header("Deleting authorization servers")
        servers = await self.scheduler.get("/api/v1/as")
        logger.info(f"Found {len(servers)} authorization servers")
        result.found = len(servers)

        async def delete(server: Dict[str, Any]) -> None:
            label = f"authorization server id={server['id']} name={server.get('name')}"
            await self._delete_one(result, f"/api/v1/as/{server['id']}", label)

        await self._each(self.pool, servers, delete)

    async def delete_password_policies(self, result: StepResult) -> None:
        self.ui.display_header("Deleting password policies")
        policies = await self.scheduler.get("/api/v1/policies", query={"type": "PASSWORD"})
        logger.info(f"Found {len(policies)} password policies")
        result.found = len(policies)

        async def delete(policy: Dict[str, Any]) -> None:
            label = f"password policy id={policy['id']} name={policy.get('name')}"
            if policy.get("system"):
                result.skipped += 1
                logger.info(f"Skipping {label}")
                return
            await self._delete_one(result, f"/api/v1/policies/{policy['id']}", label)

        await self._each(self.policy_pool, policies, delete)

    async def delete_idps(self, result: StepResult) -> None:
        self.ui.display_header("Deleting IDPs")
        idps = await self.scheduler.get("/api/v1/idps")
        logger.info(f"Found {len(idps)} IDPs")
        result.found = len(idps)

        async def delete(idp: Dict[str, Any]) -> None:
            label = f"IDP id={idp['id']} name={idp.get('name')} type={idp.get('type')}"
            await self._delete_one(result, f"/api/v1/idps/{idp['id']}", label)

        await self._each(self.pool, idps, delete)

    async def delete_idp_keys(self, result: StepResult) -> None:
        self.ui.display_header("Deleting IDP cert keys")
        keys = await self.scheduler.get("/api/v1/idps/credentials/keys")
        logger.info(f"Found {len(keys)} keys")
        result.found = len(keys)

        async def delete(key: Dict[str, Any]) -> None:
            await self._delete_one(result, f"/api/v1/idps/credentials/keys/{key['kid']}", f"IDP cert key kid={key['kid']}")

        await self._each(self.pool, keys, delete)

    async def _delete_one(self, result: StepResult, path: str, label: str) -> None:
        try:
            await self.scheduler.delete(path)
            result.deleted += 1
            logger.info(f"Deleted {label}")
        except Exception as e:
            result.failed += 1
            logger.error(str(ApiError(f"Error deleting {label}", e)))

    async def _paged(self, result: StepResult, path: str, query: Optional[Dict[str, str]], kind: str,
                     delete: Callable[[Dict[str, Any]], Awaitable[None]]) -> None:
        # Deleted users drop out of the listing, so the first page is re-read until it runs short.
        while True:
            users = await self.scheduler.get(path, query=query)
            logger.info(f"Found {len(users)} {kind}")
            result.found += len(users)
            deleted_before = result.deleted
            await self._each(self.pool, users, delete)
            if len(users) < USER_PAGE_SIZE:
                break
            if result.deleted == deleted_before:
                logger.warning(f"No {kind} could be deleted from a full page; stopping to avoid re-reading it forever")
                break

    async def _each(self, pool: ConcurrencyPool, items: List[Dict[str, Any]],
                    operation: Callable[[Dict[str, Any]], Awaitable[None]]) -> None:
        try:
            await pool.each(items, operation)
        except EachError as e:
            # Item operations log their own API errors; anything here is a bug in the item handler.
            for index, _, exc in e.failures:
                logger.error(f"Unhandled error processing item {index}: {type(exc).__name__}: {exc}")
