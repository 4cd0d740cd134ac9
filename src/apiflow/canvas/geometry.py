"""
Socket Geometry Resolver - Where nodes, sockets and connections are on the canvas.

Socket centres come from the last layout the renderer recorded for them,
or from the fixed layout: parameters stacked down the left edge, visible
output sockets stacked down the right edge. Lookups for nodes or sockets
that no longer exist return None.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from apiflow.canvas.viewport import Viewport
from apiflow.core.config import CanvasConfig, get_config
from apiflow.core.graph_store import GraphStore
from apiflow.core.models import Node, Point
from apiflow.core.types import HitKind, SocketDirection

logger = logging.getLogger(__name__)

BEZIER_MIN_OFFSET = 80.0
BEZIER_SAMPLES = 24


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, point: Point) -> bool:
        return self.x <= point.x <= self.right and self.y <= point.y <= self.bottom

    def translated(self, offset: Point) -> "Rect":
        return Rect(self.x + offset.x, self.y + offset.y, self.width, self.height)


@dataclass(frozen=True)
class HitTarget:
    """Result of a hit test."""
    kind: HitKind
    node_id: Optional[str] = None
    socket_id: Optional[str] = None

    @property
    def is_socket(self) -> bool:
        return self.kind in (HitKind.INPUT_SOCKET, HitKind.OUTPUT_SOCKET)


CANVAS_HIT = HitTarget(HitKind.CANVAS)


def bezier_controls(start: Point, end: Point) -> Tuple[Point, Point]:
    """Control points for a connection curve leaving rightwards and arriving from the left."""
    offset = max(BEZIER_MIN_OFFSET, abs(end.x - start.x) / 3)
    return Point(start.x + offset, start.y), Point(end.x - offset, end.y)


def bezier_points(start: Point, end: Point, samples: int = BEZIER_SAMPLES) -> List[Point]:
    """Sample the connection curve into ``samples + 1`` points."""
    c1, c2 = bezier_controls(start, end)
    points = []
    for i in range(samples + 1):
        t = i / samples
        u = 1 - t
        a, b, c, d = u ** 3, 3 * u * u * t, 3 * u * t * t, t ** 3
        points.append(Point(
            a * start.x + b * c1.x + c * c2.x + d * end.x,
            a * start.y + b * c1.y + c * c2.y + d * end.y,
        ))
    return points


def _distance_to_segment(p: Point, a: Point, b: Point) -> float:
    dx, dy = b.x - a.x, b.y - a.y
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(p.x - a.x, p.y - a.y)
    t = max(0.0, min(1.0, ((p.x - a.x) * dx + (p.y - a.y) * dy) / length_sq))
    return math.hypot(p.x - (a.x + t * dx), p.y - (a.y + t * dy))


class SocketGeometry:
    """
    Resolves canvas positions for nodes, sockets and connections.

    The renderer calls record_layout() after laying out a socket; the
    interaction layer and the renderer query positions synchronously.
    """

    def __init__(
        self,
        store: GraphStore,
        viewport: Viewport,
        config: Optional[CanvasConfig] = None,
    ):
        self._store = store
        self._viewport = viewport
        self._config = config if config is not None else get_config().canvas
        # (node_id, socket_id, direction) -> node-local rect
        self._layouts: Dict[Tuple[str, str, SocketDirection], Rect] = {}

    @property
    def config(self) -> CanvasConfig:
        return self._config

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    def record_layout(self, node_id: str, socket_id: str,
                      direction: SocketDirection, rect: Rect) -> None:
        """Remember where the renderer placed a socket, relative to its node."""
        self._layouts[(node_id, socket_id, direction)] = rect

    def forget_node(self, node_id: str) -> None:
        """Drop every recorded layout belonging to a node."""
        for key in [k for k in self._layouts if k[0] == node_id]:
            del self._layouts[key]

    # Node geometry
    def node_height(self, node: Node) -> float:
        if node.size.height is not None:
            return node.size.height
        outputs = len(node.request.visible_output_sockets)
        inputs = len(node.request.parameters)
        lowest = max(
            self._config.input_socket_top + inputs * self._config.socket_pitch,
            self._config.output_socket_top + outputs * self._config.socket_pitch,
        )
        return max(self._config.auto_node_height, lowest)

    def node_rect(self, node: Node) -> Rect:
        return Rect(node.position.x, node.position.y, node.size.width, self.node_height(node))

    def resize_handle_rect(self, node: Node) -> Rect:
        rect = self.node_rect(node)
        handle = self._config.resize_handle_size
        return Rect(rect.right - handle, rect.bottom - handle, handle, handle)

    # Sockets
    def _socket_index(self, node: Node, socket_id: str, direction: SocketDirection) -> Optional[int]:
        if direction == SocketDirection.INPUT:
            ids = [p.id for p in node.request.parameters]
        else:
            ids = [s.id for s in node.request.visible_output_sockets]
        return ids.index(socket_id) if socket_id in ids else None

    def recorded_layout(self, node_id: str, socket_id: str,
                        direction: SocketDirection) -> Optional[Rect]:
        return self._layouts.get((node_id, socket_id, direction))

    def fixed_socket_position(self, node: Node, socket_id: str,
                              direction: SocketDirection) -> Optional[Point]:
        """Node-local centre of a socket in the fixed layout."""
        index = self._socket_index(node, socket_id, direction)
        if index is None:
            return None
        if direction == SocketDirection.INPUT:
            return Point(0.0, self._config.input_socket_top + index * self._config.socket_pitch)
        return Point(
            node.size.width,
            self._config.output_socket_top + index * self._config.socket_pitch,
        )

    def socket_local_position(self, node: Node, socket_id: str,
                              direction: SocketDirection) -> Optional[Point]:
        if self._socket_index(node, socket_id, direction) is None:
            return None
        recorded = self._layouts.get((node.id, socket_id, direction))
        if recorded is not None:
            return recorded.center
        return self.fixed_socket_position(node, socket_id, direction)

    def socket_position(self, node_id: str, socket_id: str,
                        direction: SocketDirection) -> Optional[Point]:
        """Canvas-space centre of a socket marker, or None if unresolvable."""
        node = self._store.get_node(node_id)
        if node is None:
            return None
        local = self.socket_local_position(node, socket_id, direction)
        if local is None:
            return None
        return node.position + local

    def socket_device_position(self, node_id: str, socket_id: str,
                               direction: SocketDirection) -> Optional[Point]:
        point = self.socket_position(node_id, socket_id, direction)
        return None if point is None else self._viewport.to_device(point)

    def connection_endpoints(self, connection_id: str) -> Optional[Tuple[Point, Point]]:
        """Canvas start and end of a connection, or None if either end is gone."""
        conn = self._store.get_connection(connection_id)
        if conn is None:
            return None
        start = self.socket_position(conn.from_node_id, conn.from_socket_id, SocketDirection.OUTPUT)
        end = self.socket_position(conn.to_node_id, conn.to_socket_id, SocketDirection.INPUT)
        if start is None or end is None:
            return None
        return start, end

    # Hit testing
    def _socket_hit(self, node: Node, point: Point) -> Optional[HitTarget]:
        radius = self._config.socket_radius
        for direction, kind, sockets in (
            (SocketDirection.OUTPUT, HitKind.OUTPUT_SOCKET, node.request.visible_output_sockets),
            (SocketDirection.INPUT, HitKind.INPUT_SOCKET, node.request.parameters),
        ):
            for socket in sockets:
                local = self.socket_local_position(node, socket.id, direction)
                if local is None:
                    continue
                centre = node.position + local
                if math.hypot(point.x - centre.x, point.y - centre.y) <= radius:
                    return HitTarget(kind, node.id, socket.id)
        return None

    def hit_test(self, canvas_point: Point) -> HitTarget:
        """What lies under a canvas point; topmost (last added) node wins."""
        for node in reversed(self._store.get_nodes()):
            socket_hit = self._socket_hit(node, canvas_point)
            if socket_hit is not None:
                return socket_hit

            rect = self.node_rect(node)
            if not rect.contains(canvas_point):
                continue
            if self.resize_handle_rect(node).contains(canvas_point):
                return HitTarget(HitKind.RESIZE_HANDLE, node.id)
            if canvas_point.y - rect.y <= self._config.header_height:
                return HitTarget(HitKind.NODE_HEADER, node.id)
            return HitTarget(HitKind.NODE_BODY, node.id)
        return CANVAS_HIT

    def connection_at(self, canvas_point: Point, tolerance: Optional[float] = None) -> Optional[str]:
        """Id of the connection curve passing near a canvas point."""
        if tolerance is None:
            tolerance = self._config.connection_hit_tolerance / self._viewport.scale
        for conn in reversed(self._store.get_connections()):
            endpoints = self.connection_endpoints(conn.id)
            if endpoints is None:
                continue
            points = bezier_points(*endpoints)
            for a, b in zip(points, points[1:]):
                if _distance_to_segment(canvas_point, a, b) <= tolerance:
                    return conn.id
        return None
