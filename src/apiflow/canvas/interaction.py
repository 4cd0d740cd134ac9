"""
Interaction State Machine - Turns pointer events into canvas edits.

Exactly one gesture is active at a time. A pointer-down while a gesture
is in progress is ignored; the gesture ends on pointer-up or cancel().
Pointer positions are in device (widget pixel) space.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional, Tuple, Union

from apiflow.canvas.geometry import HitTarget, SocketGeometry
from apiflow.canvas.viewport import Viewport
from apiflow.core.config import get_config
from apiflow.core.graph_store import GraphStore
from apiflow.core.models import Connection, Point, Size, generate_id
from apiflow.core.types import HitKind, InteractionMode, MutationResult, SocketDirection

logger = logging.getLogger(__name__)


class PointerButton(Enum):
    NONE = auto()
    LEFT = auto()
    MIDDLE = auto()
    RIGHT = auto()


@dataclass(frozen=True)
class PointerEvent:
    """A toolkit-neutral pointer event."""
    position: Point
    button: PointerButton = PointerButton.NONE
    alt: bool = False


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Panning:
    last_pointer: Point


@dataclass(frozen=True)
class DraggingNode:
    node_id: str
    origin: Point
    start_pointer: Point


@dataclass(frozen=True)
class Resizing:
    node_id: str
    original_size: Size
    start_pointer: Point


@dataclass(frozen=True)
class ConnectingFrom:
    node_id: str
    socket_id: str
    start_pos: Point
    current_pos: Point


InteractionState = Union[Idle, Panning, DraggingNode, Resizing, ConnectingFrom]

_MODES = {
    Idle: InteractionMode.IDLE,
    Panning: InteractionMode.PANNING,
    DraggingNode: InteractionMode.DRAGGING_NODE,
    Resizing: InteractionMode.RESIZING,
    ConnectingFrom: InteractionMode.CONNECTING,
}


class InteractionStateMachine:
    """
    Owns the current drag gesture.

    Pans and zooms go to the Viewport; node moves, resizes and new
    connections go to the GraphStore.
    """

    def __init__(self, store: GraphStore, viewport: Viewport, geometry: SocketGeometry):
        self._store = store
        self._viewport = viewport
        self._geometry = geometry
        self._state: InteractionState = Idle()
        self._selected_node_id: Optional[str] = None

        canvas_config = get_config().canvas
        self._min_width = canvas_config.min_node_width
        self._min_height = canvas_config.min_node_height

        # Callbacks
        self._state_callbacks: List[Callable[[InteractionMode], None]] = []
        self._connection_callbacks: List[Callable[[Connection, MutationResult], None]] = []
        self._selection_callbacks: List[Callable[[Optional[str]], None]] = []

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def mode(self) -> InteractionMode:
        return _MODES[type(self._state)]

    @property
    def selected_node_id(self) -> Optional[str]:
        if self._selected_node_id is not None and self._store.get_node(self._selected_node_id) is None:
            self._selected_node_id = None
        return self._selected_node_id

    def on_state_change(self, callback: Callable[[InteractionMode], None]) -> None:
        """Register callback for gesture changes."""
        self._state_callbacks.append(callback)

    def on_connection_result(self, callback: Callable[[Connection, MutationResult], None]) -> None:
        """Register callback for the outcome of each attempted connection."""
        self._connection_callbacks.append(callback)

    def on_selection_change(self, callback: Callable[[Optional[str]], None]) -> None:
        self._selection_callbacks.append(callback)

    def _set_state(self, state: InteractionState) -> None:
        old_mode = self.mode
        self._state = state
        if self.mode != old_mode:
            logger.debug(f"Interaction state changed: {old_mode} -> {self.mode}")
            for callback in self._state_callbacks:
                try:
                    callback(self.mode)
                except Exception as e:
                    logger.error(f"State callback error: {e}")

    def _report_connection(self, conn: Connection, result: MutationResult) -> None:
        for callback in self._connection_callbacks:
            try:
                callback(conn, result)
            except Exception as e:
                logger.error(f"Connection callback error: {e}")

    def select(self, node_id: Optional[str]) -> None:
        if node_id == self._selected_node_id:
            return
        self._selected_node_id = node_id
        for callback in self._selection_callbacks:
            try:
                callback(node_id)
            except Exception as e:
                logger.error(f"Selection callback error: {e}")

    def rubber_band(self) -> Optional[Tuple[Point, Point]]:
        """Canvas start and end of the connection being drawn, if any."""
        if isinstance(self._state, ConnectingFrom):
            return self._state.start_pos, self._state.current_pos
        return None

    def hit_test(self, device_point: Point) -> HitTarget:
        return self._geometry.hit_test(self._viewport.to_canvas(device_point))

    # Events
    def pointer_down(self, event: PointerEvent) -> bool:
        """
        Start a gesture.

        Returns:
            True if a gesture started
        """
        if not isinstance(self._state, Idle):
            return False

        if event.button == PointerButton.MIDDLE or (event.alt and event.button == PointerButton.LEFT):
            self._set_state(Panning(last_pointer=event.position))
            return True

        if event.button != PointerButton.LEFT:
            return False

        hit = self.hit_test(event.position)
        if hit.kind == HitKind.OUTPUT_SOCKET:
            start = self._geometry.socket_position(hit.node_id, hit.socket_id, SocketDirection.OUTPUT)
            if start is None:
                return False
            self._set_state(ConnectingFrom(
                node_id=hit.node_id,
                socket_id=hit.socket_id,
                start_pos=start,
                current_pos=self._viewport.to_canvas(event.position),
            ))
            return True

        if hit.kind == HitKind.RESIZE_HANDLE:
            node = self._store.get_node(hit.node_id)
            size = Size(node.size.width, self._geometry.node_height(node))
            self.select(node.id)
            self._set_state(Resizing(node_id=node.id, original_size=size, start_pointer=event.position))
            return True

        if hit.kind == HitKind.NODE_HEADER:
            node = self._store.get_node(hit.node_id)
            self.select(node.id)
            self._set_state(DraggingNode(
                node_id=node.id, origin=node.position, start_pointer=event.position,
            ))
            return True

        if hit.kind == HitKind.NODE_BODY:
            self.select(hit.node_id)
        elif hit.kind == HitKind.CANVAS:
            self.select(None)
        return False

    def pointer_move(self, event: PointerEvent) -> None:
        state = self._state
        scale = self._viewport.scale

        if isinstance(state, Panning):
            self._viewport.pan(event.position - state.last_pointer)
            self._state = Panning(last_pointer=event.position)

        elif isinstance(state, DraggingNode):
            delta = (event.position - state.start_pointer).scaled(1 / scale)
            result = self._store.update_node(state.node_id, {"position": state.origin + delta})
            if result == MutationResult.NOT_FOUND:
                self._set_state(Idle())

        elif isinstance(state, Resizing):
            delta = (event.position - state.start_pointer).scaled(1 / scale)
            size = Size(
                width=max(self._min_width, state.original_size.width + delta.x),
                height=max(self._min_height, state.original_size.height + delta.y),
            )
            if self._store.update_node(state.node_id, {"size": size}) == MutationResult.NOT_FOUND:
                self._set_state(Idle())

        elif isinstance(state, ConnectingFrom):
            self._state = ConnectingFrom(
                node_id=state.node_id,
                socket_id=state.socket_id,
                start_pos=state.start_pos,
                current_pos=self._viewport.to_canvas(event.position),
            )

    def pointer_up(self, event: PointerEvent) -> Optional[MutationResult]:
        """
        Finish the current gesture.

        Returns:
            The add_connection result when a connection drag ended on an
            input socket, otherwise None
        """
        state = self._state
        self._set_state(Idle())

        if not isinstance(state, ConnectingFrom):
            return None

        hit = self.hit_test(event.position)
        if hit.kind != HitKind.INPUT_SOCKET:
            logger.debug("Connection drag cancelled")
            return None

        conn = Connection(
            id=generate_id("conn"),
            from_node_id=state.node_id,
            from_socket_id=state.socket_id,
            to_node_id=hit.node_id,
            to_socket_id=hit.socket_id,
        )
        if hit.node_id == state.node_id:
            logger.warning("Cannot connect node to itself")
            result = MutationResult.INVALID
        else:
            result = self._store.add_connection(conn)
        self._report_connection(conn, result)
        return result

    def wheel(self, device_point: Point, delta: float) -> None:
        """Zoom at the cursor."""
        self._viewport.zoom_by_wheel(device_point, delta)

    def cancel(self) -> None:
        """Abandon the current gesture without creating anything."""
        self._set_state(Idle())
