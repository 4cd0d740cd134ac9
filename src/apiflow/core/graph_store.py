"""
Graph Store - The Model in APIFlow's editor.

Owns the node set, the connection set and each node's request/runtime
state. Every write goes through update_node() so the canvas, the form
widgets and the execution engine all observe one consistent model.
Operations never raise for unknown ids; they report a MutationResult.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from apiflow.core.models import Connection, Node
from apiflow.core.types import MutationResult

logger = logging.getLogger(__name__)

GRAPH_FORMAT_VERSION = "1.0"

# Node attributes a patch may touch
PATCHABLE_FIELDS = frozenset({"position", "size", "request", "runtime", "kind"})


class GraphStore:
    """
    Node and connection storage with change notification.

    By default a parameter accepts at most one incoming connection; pass
    ``allow_fan_in=True`` to let several upstream sockets write the same
    parameter (last write wins).
    """

    def __init__(self, allow_fan_in: bool = False):
        self._nodes: Dict[str, Node] = {}
        self._connections: List[Connection] = []
        self._allow_fan_in = allow_fan_in
        self._change_callbacks: List[Callable[[], None]] = []
        self._dirty = False
        self._file_path: Optional[str] = None

    @property
    def allow_fan_in(self) -> bool:
        return self._allow_fan_in

    @property
    def is_dirty(self) -> bool:
        """Whether the graph has unsaved changes."""
        return self._dirty

    @property
    def file_path(self) -> Optional[str]:
        return self._file_path

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def on_change(self, callback: Callable[[], None]) -> None:
        """Register a callback for any change to the graph."""
        self._change_callbacks.append(callback)

    def mark_clean(self) -> None:
        """Forget unsaved changes, e.g. after seeding a fresh graph."""
        self._dirty = False

    def _mark_dirty(self) -> None:
        self._dirty = True
        self._notify()

    def _notify(self) -> None:
        for callback in self._change_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Change callback error: {e}")

    # Queries
    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def get_nodes(self) -> List[Node]:
        """All nodes in insertion order."""
        return list(self._nodes.values())

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        for conn in self._connections:
            if conn.id == connection_id:
                return conn
        return None

    def get_connections(self) -> List[Connection]:
        """All connections in stored order."""
        return list(self._connections)

    def outgoing_connections(self, node_id: str) -> List[Connection]:
        return [c for c in self._connections if c.from_node_id == node_id]

    def incoming_connections(self, node_id: str, socket_id: Optional[str] = None) -> List[Connection]:
        return [
            c for c in self._connections
            if c.to_node_id == node_id and (socket_id is None or c.to_socket_id == socket_id)
        ]

    # Node management
    def add_node(self, node: Node) -> MutationResult:
        """Add a node; a node with the same id is reported as DUPLICATE."""
        if node.id in self._nodes:
            logger.warning(f"Node {node.id} already exists")
            return MutationResult.DUPLICATE
        self._nodes[node.id] = node
        logger.debug(f"Added node {node.id}")
        self._mark_dirty()
        return MutationResult.OK

    def update_node(self, node_id: str, patch: Dict[str, Any]) -> MutationResult:
        """
        Shallow-merge ``patch`` into a node.

        Only the keys present in the patch change; everything else is kept.

        Args:
            node_id: Node to update
            patch: Mapping of node attribute name to new value

        Returns:
            OK, NOT_FOUND for an unknown node, INVALID for unknown keys
        """
        node = self._nodes.get(node_id)
        if node is None:
            logger.debug(f"update_node: node {node_id} not found")
            return MutationResult.NOT_FOUND

        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            logger.warning(f"update_node: rejected unknown fields {sorted(unknown)}")
            return MutationResult.INVALID

        self._nodes[node_id] = replace(node, **patch)
        # Runtime-only patches leave the saved state clean
        if set(patch) == {"runtime"}:
            self._notify()
        else:
            self._mark_dirty()
        return MutationResult.OK

    def remove_node(self, node_id: str) -> MutationResult:
        """Remove a node and every connection touching it."""
        if node_id not in self._nodes:
            return MutationResult.NOT_FOUND

        for conn in [c for c in self._connections if c.touches(node_id)]:
            self._detach(conn)

        del self._nodes[node_id]
        logger.debug(f"Removed node {node_id}")
        self._mark_dirty()
        return MutationResult.OK

    # Connection management
    def add_connection(self, conn: Connection) -> MutationResult:
        """
        Add a connection from an output socket to an input parameter.

        Returns:
            OK on success (the target parameter is marked connected),
            NOT_FOUND for an unknown node or socket, INVALID for a disabled
            source socket or an already-fed parameter, DUPLICATE when the
            same endpoints are already connected
        """
        source = self._nodes.get(conn.from_node_id)
        target = self._nodes.get(conn.to_node_id)
        if source is None or target is None:
            logger.debug(f"add_connection: unknown node in {conn.endpoints}")
            return MutationResult.NOT_FOUND

        socket = source.request.get_output_socket(conn.from_socket_id)
        param = target.request.get_parameter(conn.to_socket_id)
        if socket is None or param is None:
            logger.debug(f"add_connection: unknown socket in {conn.endpoints}")
            return MutationResult.NOT_FOUND

        if not socket.enabled:
            logger.info(f"Cannot connect from disabled output '{socket.label}'")
            return MutationResult.INVALID

        for existing in self._connections:
            if existing.endpoints == conn.endpoints or existing.id == conn.id:
                logger.info(f"Duplicate connection ignored: {conn.endpoints}")
                return MutationResult.DUPLICATE

        if not self._allow_fan_in and self.incoming_connections(conn.to_node_id, conn.to_socket_id):
            logger.info(f"Parameter '{param.key}' on {conn.to_node_id} is already connected")
            return MutationResult.INVALID

        self._connections.append(conn)
        self.update_node(target.id, {
            "request": target.request.with_parameter_connected(param.id, True)
        })
        logger.debug(f"Added connection {conn.id}")
        return MutationResult.OK

    def remove_connection(self, connection_id: str) -> MutationResult:
        """Remove a connection, clearing has_connection on an unfed parameter."""
        conn = self.get_connection(connection_id)
        if conn is None:
            return MutationResult.NOT_FOUND
        self._detach(conn)
        logger.debug(f"Removed connection {connection_id}")
        self._mark_dirty()
        return MutationResult.OK

    def _detach(self, conn: Connection) -> None:
        self._connections = [c for c in self._connections if c.id != conn.id]

        target = self._nodes.get(conn.to_node_id)
        if target is None or self.incoming_connections(conn.to_node_id, conn.to_socket_id):
            return
        if target.request.get_parameter(conn.to_socket_id) is not None:
            self._nodes[target.id] = replace(
                target,
                request=target.request.with_parameter_connected(conn.to_socket_id, False),
            )

    def clear(self) -> None:
        """Remove every node and connection."""
        self._nodes = {}
        self._connections = []
        self._file_path = None
        self._mark_dirty()

    # Serialization
    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph (without runtime state) to a dictionary."""
        return {
            "version": GRAPH_FORMAT_VERSION,
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "connections": [c.to_dict() for c in self._connections],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], allow_fan_in: bool = False) -> "GraphStore":
        """Create a store from a dictionary, skipping connections that no longer validate."""
        store = cls(allow_fan_in=allow_fan_in)
        for node_data in data.get("nodes", []):
            node = Node.from_dict(node_data)
            # has_connection is re-derived from the connections loaded below
            params = [replace(p, has_connection=False) for p in node.request.parameters]
            store.add_node(replace(node, request=replace(node.request, parameters=params)))
        for conn_data in data.get("connections", []):
            conn = Connection.from_dict(conn_data)
            result = store.add_connection(conn)
            if not result.ok:
                logger.warning(f"Skipped connection {conn.id} while loading: {result.name}")
        store._dirty = False
        return store

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str, allow_fan_in: bool = False) -> "GraphStore":
        return cls.from_dict(json.loads(json_str), allow_fan_in=allow_fan_in)

    def save(self, file_path: Optional[str] = None) -> str:
        """
        Save the graph to file.

        Args:
            file_path: Path to save to (uses existing path if None)

        Returns:
            Path to saved file
        """
        if file_path is None:
            if self._file_path is None:
                raise ValueError("No file path specified")
            file_path = self._file_path

        with open(file_path, "w") as f:
            f.write(self.to_json())

        self._file_path = file_path
        self._dirty = False
        logger.info(f"Graph saved to {file_path}")
        return file_path

    @classmethod
    def load(cls, file_path: str, allow_fan_in: bool = False) -> "GraphStore":
        """Load a graph from file."""
        with open(file_path, "r") as f:
            store = cls.from_json(f.read(), allow_fan_in=allow_fan_in)

        store._file_path = file_path
        logger.info(f"Graph loaded from {file_path}")
        return store
