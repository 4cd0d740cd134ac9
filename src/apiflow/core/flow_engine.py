"""
Flow Engine - Executes HttpApi nodes and propagates their results.

execute() enqueues a node; a single runner drains the queue in FIFO
order and starts each node as its own task. When a node succeeds, values
extracted from its response are written into connected downstream
parameters and those nodes are enqueued in turn.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional, Set

from apiflow.core.config import get_config
from apiflow.core.errors import RequestError
from apiflow.core.graph_store import GraphStore
from apiflow.core.http_executor import HttpExecutor, HttpxExecutor
from apiflow.core.models import (
    Connection,
    HttpResponse,
    RequestErrorInfo,
    RuntimeState,
)
from apiflow.core.path_extractor import MISSING, extract
from apiflow.core.request_builder import build_request
from apiflow.core.types import RequestStatus
from apiflow.core.validation import process_response

logger = logging.getLogger(__name__)


class FlowEngine:
    """
    Runs nodes from a GraphStore against an HttpExecutor.

    Failures stay on the failing node: its runtime state records the error
    and nothing downstream of it is triggered. Connection cycles are not
    detected and re-execute indefinitely.
    """

    def __init__(
        self,
        store: GraphStore,
        executor: Optional[HttpExecutor] = None,
        default_content_type: Optional[str] = None,
    ):
        """
        Initialize the flow engine.

        Args:
            store: Graph whose nodes are executed and updated
            executor: HTTP executor (defaults to an HttpxExecutor)
            default_content_type: Content-Type for JSON bodies (defaults to config)
        """
        self._store = store
        self._executor = executor if executor is not None else HttpxExecutor()
        if default_content_type is None:
            default_content_type = get_config().http.default_content_type
        self._default_content_type = default_content_type

        self._queue: Optional[asyncio.Queue] = None
        self._queue_loop: Optional[asyncio.AbstractEventLoop] = None
        self._runner: Optional[asyncio.Task] = None
        self._running_tasks: Set[asyncio.Task] = set()

        # Callbacks
        self._status_callbacks: List[Callable[[str, RequestStatus], None]] = []
        self._propagate_callbacks: List[Callable[[Connection, Any], None]] = []
        self._error_callbacks: List[Callable[[str, Exception], None]] = []

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def executor(self) -> HttpExecutor:
        return self._executor

    @property
    def is_busy(self) -> bool:
        """Whether any node is queued or in flight."""
        queued = self._queue is not None and not self._queue.empty()
        return queued or bool(self._running_tasks)

    def on_node_status(self, callback: Callable[[str, RequestStatus], None]) -> None:
        """Register callback for node status changes (node_id, status)."""
        self._status_callbacks.append(callback)

    def on_propagate(self, callback: Callable[[Connection, Any], None]) -> None:
        """Register callback for values written across a connection."""
        self._propagate_callbacks.append(callback)

    def on_error(self, callback: Callable[[str, Exception], None]) -> None:
        """Register callback for node failures."""
        self._error_callbacks.append(callback)

    def _notify_status(self, node_id: str, status: RequestStatus) -> None:
        for callback in self._status_callbacks:
            try:
                callback(node_id, status)
            except Exception as e:
                logger.error(f"Node status callback error: {e}")

    def _notify_propagate(self, conn: Connection, value: Any) -> None:
        for callback in self._propagate_callbacks:
            try:
                callback(conn, value)
            except Exception as e:
                logger.error(f"Propagate callback error: {e}")

    def _notify_error(self, node_id: str, error: Exception) -> None:
        for callback in self._error_callbacks:
            try:
                callback(node_id, error)
            except Exception as e:
                logger.error(f"Error callback failed: {e}")

    # Scheduling
    def _ensure_runner(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._queue_loop is not loop:
            self._queue = asyncio.Queue()
            self._queue_loop = loop
            self._runner = None
        if self._runner is None or self._runner.done():
            self._runner = loop.create_task(self._drain(self._queue))
        return self._queue

    async def _drain(self, queue: asyncio.Queue) -> None:
        while True:
            node_id = await queue.get()
            try:
                task = asyncio.create_task(self._execute_node(node_id))
                self._running_tasks.add(task)
                task.add_done_callback(self._running_tasks.discard)
            finally:
                queue.task_done()

    def execute(self, node_id: str) -> bool:
        """
        Enqueue a node for execution.

        Must be called from a running event loop.

        Returns:
            True if the node exists and was queued
        """
        if self._store.get_node(node_id) is None:
            logger.warning(f"Cannot execute unknown node {node_id}")
            return False
        self._ensure_runner().put_nowait(node_id)
        logger.debug(f"Queued node {node_id}")
        return True

    def execute_roots(self, skip_busy: bool = False) -> List[str]:
        """
        Enqueue every node that has no incoming connection.

        Args:
            skip_busy: Leave out roots that are already loading
        """
        roots = [
            node.id for node in self._store.get_nodes()
            if not self._store.incoming_connections(node.id)
            and not (skip_busy and node.runtime.status.is_busy)
        ]
        for node_id in roots:
            self.execute(node_id)
        logger.info(f"Executing flow from {len(roots)} root node(s)")
        return roots

    async def wait_until_idle(self) -> None:
        """Wait until the queue is empty and no node is in flight."""
        while True:
            if self._queue is not None:
                await self._queue.join()
            pending = set(self._running_tasks)
            if not pending:
                if self._queue is None or self._queue.empty():
                    return
                continue
            await asyncio.gather(*pending, return_exceptions=True)

    async def run(self, node_id: str) -> bool:
        """Execute a node and wait for its whole downstream chain to finish."""
        if not self.execute(node_id):
            return False
        await self.wait_until_idle()
        return True

    async def cancel(self) -> None:
        """Cancel the runner and every in-flight node; the executor stays open."""
        tasks = set(self._running_tasks)
        if self._runner is not None:
            tasks.add(self._runner)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._running_tasks.clear()
        self._runner = None
        self._queue = None

    async def shutdown(self) -> None:
        """Cancel all work, then close the executor."""
        await self.cancel()

        close = getattr(self._executor, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result
        logger.info("Flow engine shut down")

    # Execution
    def _set_runtime(self, node_id: str, runtime: RuntimeState) -> bool:
        if not self._store.update_node(node_id, {"runtime": runtime}).ok:
            logger.debug(f"Node {node_id} disappeared during execution")
            return False
        self._notify_status(node_id, runtime.status)
        return True

    async def _execute_node(self, node_id: str) -> None:
        node = self._store.get_node(node_id)
        if node is None:
            logger.debug(f"Skipping removed node {node_id}")
            return

        self._set_runtime(node_id, RuntimeState(status=RequestStatus.LOADING))

        try:
            built = build_request(node.request, self._default_content_type)
            logger.info(f"Executing {node_id}: {built.descriptor.method.value} {built.descriptor.url}")
            response = await self._executor.execute(built.descriptor)
        except RequestError as e:
            self._fail(node_id, e)
            return
        except asyncio.CancelledError:
            self._set_runtime(node_id, RuntimeState())
            raise
        except Exception as e:
            logger.exception(f"Unexpected executor failure for {node_id}")
            self._fail(node_id, RequestError(str(e) or type(e).__name__, code="ERR_UNKNOWN"))
            return

        # Re-read: the request may have been edited while the call was pending
        node = self._store.get_node(node_id)
        if node is None:
            logger.debug(f"Node {node_id} removed before its response arrived")
            return

        try:
            validation = process_response(
                response,
                extract_path=node.request.extract_path,
                expected_status=node.request.expected_status,
                expression=node.request.validation,
            )
            self._set_runtime(node_id, RuntimeState(
                status=RequestStatus.SUCCESS,
                response=response,
                extracted=validation.extracted,
                validation=validation,
            ))
            logger.info(f"Node {node_id} succeeded with status {response.status}")

            self._fan_out(node_id, response)
        except Exception as e:
            logger.exception(f"Post-processing failed for {node_id}")
            self._fail(node_id, RequestError(
                str(e) or type(e).__name__, code="ERR_UNKNOWN", response=response,
            ))

    def _fail(self, node_id: str, error: RequestError) -> None:
        logger.warning(f"Node {node_id} failed: {error.message}")
        self._set_runtime(node_id, RuntimeState(
            status=RequestStatus.ERROR,
            response=error.response,
            error=RequestErrorInfo(message=error.message, code=error.code),
        ))
        self._notify_error(node_id, error)

    def _fan_out(self, node_id: str, response: HttpResponse) -> None:
        source = self._store.get_node(node_id)
        if source is None:
            return

        targets: List[str] = []
        for conn in self._store.outgoing_connections(node_id):
            socket = source.request.get_output_socket(conn.from_socket_id)
            if socket is None or not socket.enabled:
                logger.debug(f"Connection {conn.id}: output socket unavailable, skipped")
                continue

            value = extract(response.data, socket.path)
            if value is MISSING:
                logger.debug(f"Connection {conn.id}: nothing at '{socket.path}', skipped")
                continue

            target = self._store.get_node(conn.to_node_id)
            if target is None or target.request.get_parameter(conn.to_socket_id) is None:
                logger.debug(f"Connection {conn.id}: target parameter unavailable, skipped")
                continue

            self._store.update_node(target.id, {
                "request": target.request.with_parameter_value(conn.to_socket_id, value)
            })
            self._notify_propagate(conn, value)
            targets.append(target.id)

        for target_id in targets:
            self.execute(target_id)
