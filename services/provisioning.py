# ============================================================================
# REMOTE PROVISIONING TRACKER
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Parallel core-admin fan-out
# PURPOSE: Create/unload cores on nodes, correlate async ids, aggregate outcome
# CREATED: 18 OCT 2026
# ============================================================================
"""
Remote Provisioning Tracker

CoreAdminClient talks to one node's core-admin endpoint
({base_url}/admin/cores) over httpx. Every method returns a
CoreAdminResponse; transport errors become failed responses, never raise.

ProvisioningTracker submits a batch of core-create requests concurrently
and waits until all complete or the batch timeout elapses. Nothing is
retried: a failed call is reported and the caller rolls back.

With an async prefix, each call gets its own id "<prefix><n>". The node
accepts the call immediately and the tracker polls REQUESTSTATUS until the
node reports completed or failed. The aggregated outcome is stored under
the prefix so a caller can poll it later.
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.config import get_defaults
from core.contracts import ReplicaType, RequestState
from core.logging import get_logger, log_context
from core.models import CoreAdminResponse, RequestStatus
from repositories import RequestStatusRepository

logger = get_logger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=60.0, write=30.0, pool=30.0)

ASYNC_COMPLETED = "completed"
ASYNC_FAILED = "failed"
ASYNC_NOT_FOUND = "notfound"


# ============================================================================
# REQUESTS AND RESULTS
# ============================================================================

@dataclass(frozen=True)
class CoreCreateRequest:
    """One core to create on one node."""
    node_name: str
    base_url: str
    core: str
    collection: str
    shard: str
    replica_type: ReplicaType
    config_name: str
    replica_name: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)
    async_id: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        params = {
            "action": "CREATE",
            "name": self.core,
            "collection": self.collection,
            "shard": self.shard,
            "replicaType": self.replica_type.value,
            "collection.configName": self.config_name,
            "wt": "json",
        }
        if self.replica_name:
            params["coreNodeName"] = self.replica_name
        for key, value in self.properties.items():
            params[f"property.{key}"] = value
        if self.async_id:
            params["async"] = self.async_id
        return params


@dataclass
class ProvisioningResult:
    """
    Aggregated outcome of a batch.

    success: node name -> acknowledgements
    failure: node name -> error messages (one per failed core)
    """
    success: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    failure: Dict[str, List[str]] = field(default_factory=dict)
    tracked: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failure

    def add(self, response: CoreAdminResponse) -> None:
        if response.success:
            self.success.setdefault(response.node_name, []).append(
                {"core": response.core, "response": response.body}
            )
        else:
            self.failure.setdefault(response.node_name, []).append(
                f"{response.core}: {response.error or 'unknown error'}"
            )

    def failure_summary(self) -> Dict[str, str]:
        return {node: "; ".join(errors) for node, errors in self.failure.items()}


# ============================================================================
# CORE ADMIN CLIENT
# ============================================================================

class CoreAdminClient:
    """Async HTTP client for node core-admin endpoints."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self._timeout = timeout or DEFAULT_TIMEOUT
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, base_url: str, params: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
        """
        GET {base_url}/admin/cores.

        Returns (status_code, response_body_dict).
        On connection failure, returns (502, error_dict).
        """
        url = f"{base_url.rstrip('/')}/admin/cores"

        try:
            resp = await self._get_client().get(url, params=params)

            try:
                body = resp.json()
            except ValueError:
                body = {"detail": resp.text}

            return resp.status_code, body

        except httpx.ConnectError as e:
            logger.error(f"Cannot reach node at {url}: {e}")
            return 502, {"error": "Node unreachable", "detail": str(e)}
        except httpx.TimeoutException as e:
            logger.error(f"Core admin timeout: {url}: {e}")
            return 504, {"error": "Node timeout", "detail": str(e)}
        except httpx.HTTPError as e:
            logger.error(f"Core admin request failed: {url}: {e}")
            return 502, {"error": "Core admin error", "detail": str(e)}

    @staticmethod
    def _error_of(status: int, body: Dict[str, Any]) -> Optional[str]:
        if status >= 400:
            error = body.get("error")
            if isinstance(error, dict):
                return error.get("msg") or str(error)
            return f"HTTP {status}: {error or body.get('detail') or body}"
        header_status = (body.get("responseHeader") or {}).get("status", 0)
        if header_status:
            return f"Core admin status {header_status}: {body.get('error') or body}"
        return None

    def _response(
        self,
        node_name: str,
        core: str,
        status: int,
        body: Dict[str, Any],
        async_id: Optional[str] = None,
    ) -> CoreAdminResponse:
        error = self._error_of(status, body)
        return CoreAdminResponse(
            node_name=node_name,
            core=core,
            success=error is None,
            status_code=status,
            body=body,
            error=error,
            async_id=async_id,
        )

    async def create_core(self, request: CoreCreateRequest) -> CoreAdminResponse:
        status, body = await self._request(request.base_url, request.to_params())
        return self._response(request.node_name, request.core, status, body, request.async_id)

    async def unload_core(
        self,
        node_name: str,
        base_url: str,
        core: str,
        delete_index: bool = True,
    ) -> CoreAdminResponse:
        """UNLOAD a core, deleting its index, data and instance directories."""
        flag = "true" if delete_index else "false"
        status, body = await self._request(
            base_url,
            {
                "action": "UNLOAD",
                "core": core,
                "deleteIndex": flag,
                "deleteDataDir": flag,
                "deleteInstanceDir": flag,
                "wt": "json",
            },
        )
        return self._response(node_name, core, status, body)

    async def request_status(
        self,
        node_name: str,
        base_url: str,
        core: str,
        async_id: str,
    ) -> Tuple[str, CoreAdminResponse]:
        """
        REQUESTSTATUS for an async id.

        Returns:
            (node-reported state, response); state is "notfound" on errors
        """
        status, body = await self._request(
            base_url,
            {"action": "REQUESTSTATUS", "requestid": async_id, "wt": "json"},
        )
        response = self._response(node_name, core, status, body, async_id)
        if not response.success:
            return ASYNC_NOT_FOUND, response
        return str(body.get("STATUS", ASYNC_NOT_FOUND)).lower(), response


# ============================================================================
# TRACKER
# ============================================================================

class ProvisioningTracker:
    """Concurrent core creation with optional async correlation."""

    def __init__(
        self,
        client: CoreAdminClient,
        request_status: Optional[RequestStatusRepository] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        timeouts = get_defaults().timeouts
        self.client = client
        self.request_status = request_status
        self.timeout = timeout if timeout is not None else timeouts.core_admin_timeout
        self.poll_interval = (
            poll_interval if poll_interval is not None else timeouts.async_status_poll_interval
        )
        self._last_ns = 0

    def new_async_id(self, prefix: str) -> str:
        """Unique per-call id derived from the caller's async prefix."""
        ns = abs(time.monotonic_ns())
        if ns <= self._last_ns:
            ns = self._last_ns + 1
        self._last_ns = ns
        return f"{prefix}{ns}"

    async def _await_async(self, request: CoreCreateRequest) -> CoreAdminResponse:
        """Poll REQUESTSTATUS until the node reports a terminal state."""
        while True:
            state, response = await self.client.request_status(
                request.node_name, request.base_url, request.core, request.async_id
            )
            if state == ASYNC_COMPLETED:
                return response
            if state in (ASYNC_FAILED, ASYNC_NOT_FOUND):
                return response.model_copy(
                    update={
                        "success": False,
                        "error": response.error
                        or f"Async request {request.async_id} {state}: {response.body}",
                    }
                )
            await asyncio.sleep(self.poll_interval)

    async def _submit_one(self, request: CoreCreateRequest) -> CoreAdminResponse:
        with log_context(node_name=request.node_name, core=request.core, shard=request.shard):
            response = await self.client.create_core(request)
            if not response.success or not request.async_id:
                if not response.success:
                    logger.error(f"Core create failed: {response.error}")
                return response
            return await self._await_async(request)

    async def submit_all(
        self,
        requests: List[CoreCreateRequest],
        async_prefix: Optional[str] = None,
    ) -> ProvisioningResult:
        """
        Create every core concurrently; block until done or timed out.

        Args:
            requests: One entry per core
            async_prefix: Caller's async id; enables per-call correlation

        Returns:
            ProvisioningResult (never raises for remote failures)
        """
        result = ProvisioningResult()
        if async_prefix:
            requests = [replace(r, async_id=self.new_async_id(async_prefix)) for r in requests]
            for request in requests:
                result.tracked.setdefault(request.node_name, []).append(request.async_id)
            await self._save_status(async_prefix, RequestState.RUNNING, result)

        if not requests:
            return result

        tasks = {asyncio.ensure_future(self._submit_one(r)): r for r in requests}
        done, pending = await asyncio.wait(tasks, timeout=self.timeout)

        for task in pending:
            task.cancel()
            request = tasks[task]
            result.add(
                CoreAdminResponse(
                    node_name=request.node_name,
                    core=request.core,
                    success=False,
                    error=f"No response within {self.timeout:.0f}s",
                    async_id=request.async_id,
                )
            )

        for task in done:
            request = tasks[task]
            if task.exception() is not None:
                result.add(
                    CoreAdminResponse(
                        node_name=request.node_name,
                        core=request.core,
                        success=False,
                        error=str(task.exception()),
                        async_id=request.async_id,
                    )
                )
            else:
                result.add(task.result())

        logger.info(
            f"Provisioned {sum(len(v) for v in result.success.values())} cores, "
            f"{sum(len(v) for v in result.failure.values())} failures"
        )

        if async_prefix:
            state = RequestState.COMPLETED if result.ok else RequestState.FAILED
            await self._save_status(async_prefix, state, result)
        return result

    async def unload_all(self, targets: List[Tuple[str, str, str]]) -> ProvisioningResult:
        """
        Best-effort UNLOAD of (node_name, base_url, core) targets.

        Failures are collected, never raised.
        """
        result = ProvisioningResult()
        if not targets:
            return result
        responses = await asyncio.gather(
            *(self.client.unload_core(node, url, core) for node, url, core in targets),
            return_exceptions=True,
        )
        for (node, _, core), response in zip(targets, responses):
            if isinstance(response, BaseException):
                result.add(
                    CoreAdminResponse(node_name=node, core=core, success=False, error=str(response))
                )
            else:
                result.add(response)
        if result.failure:
            logger.warning(f"Core unload failures (ignored): {result.failure_summary()}")
        return result

    async def _save_status(
        self,
        request_id: str,
        state: RequestState,
        result: ProvisioningResult,
    ) -> None:
        if self.request_status is None:
            return
        await self.request_status.save(
            RequestStatus(
                request_id=request_id,
                state=state,
                success=result.success,
                failure=result.failure,
                tracked=result.tracked,
            )
        )


__all__ = [
    "CoreCreateRequest",
    "ProvisioningResult",
    "CoreAdminClient",
    "ProvisioningTracker",
    "DEFAULT_TIMEOUT",
]
