"""
Node Graph View - The main canvas for composing API flows.

A custom-painted widget: pointer events are translated into
PointerEvents for the InteractionStateMachine, and every repaint draws
the GraphStore through the Viewport transform.
"""

import logging
from typing import Optional

from PyQt6.QtCore import QPointF, QRectF, Qt, pyqtSignal
from PyQt6.QtGui import QContextMenuEvent, QKeyEvent, QMouseEvent, QPainter, QPaintEvent, QWheelEvent
from PyQt6.QtWidgets import QMenu, QWidget

from apiflow.canvas.geometry import SocketGeometry
from apiflow.canvas.interaction import InteractionStateMachine, PointerButton, PointerEvent
from apiflow.canvas.viewport import Viewport
from apiflow.core.graph_store import GraphStore
from apiflow.core.models import Connection, Point
from apiflow.core.types import HitKind, InteractionMode, MutationResult
from apiflow.gui.node_graph.node_painter import NodePainter

logger = logging.getLogger(__name__)

_BUTTONS = {
    Qt.MouseButton.LeftButton: PointerButton.LEFT,
    Qt.MouseButton.MiddleButton: PointerButton.MIDDLE,
    Qt.MouseButton.RightButton: PointerButton.RIGHT,
}


def _pointer_event(event: QMouseEvent) -> PointerEvent:
    pos = event.position()
    return PointerEvent(
        position=Point(pos.x(), pos.y()),
        button=_BUTTONS.get(event.button(), PointerButton.NONE),
        alt=bool(event.modifiers() & Qt.KeyboardModifier.AltModifier),
    )


class NodeGraphView(QWidget):
    """
    Main view for the node graph editor.

    Supports:
    - Pan (middle button or Alt+drag) and zoom to cursor
    - Dragging nodes by their header and resizing from the corner handle
    - Drawing connections from output sockets to parameters
    - Click on a connection to delete it
    - Context menus and keyboard shortcuts
    """

    # Signals
    node_selected = pyqtSignal(str)  # node_id, "" when nothing is selected
    node_deleted = pyqtSignal(str)  # node_id
    connection_deleted = pyqtSignal(str)  # connection_id
    add_node_requested = pyqtSignal(float, float)  # canvas x, y
    execute_requested = pyqtSignal(str)  # node_id
    status_message = pyqtSignal(str)

    def __init__(self, store: GraphStore, parent: Optional[QWidget] = None):
        super().__init__(parent)

        self._store = store
        self._viewport = Viewport()
        self._geometry = SocketGeometry(store, self._viewport)
        self._interaction = InteractionStateMachine(store, self._viewport, self._geometry)
        self._painter = NodePainter(self._geometry)
        self._hover_connection_id: Optional[str] = None

        self._setup_view()
        self._connect_model()

    def _setup_view(self) -> None:
        """Configure the widget."""
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMouseTracking(True)
        self.setMinimumSize(400, 300)

    def _connect_model(self) -> None:
        self._store.on_change(self.update)
        self._viewport.on_change(lambda _state: self.update())
        self._interaction.on_state_change(self._on_mode_changed)
        self._interaction.on_selection_change(lambda node_id: self.node_selected.emit(node_id or ""))
        self._interaction.on_connection_result(self._on_connection_result)

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def geometry_resolver(self) -> SocketGeometry:
        return self._geometry

    @property
    def interaction(self) -> InteractionStateMachine:
        return self._interaction

    @property
    def selected_node_id(self) -> Optional[str]:
        return self._interaction.selected_node_id

    def set_store(self, store: GraphStore) -> None:
        """Show a different graph, e.g. after loading a file."""
        self._store = store
        self._geometry = SocketGeometry(store, self._viewport)
        self._interaction = InteractionStateMachine(store, self._viewport, self._geometry)
        self._painter = NodePainter(self._geometry)
        self._store.on_change(self.update)
        self._interaction.on_state_change(self._on_mode_changed)
        self._interaction.on_selection_change(lambda node_id: self.node_selected.emit(node_id or ""))
        self._interaction.on_connection_result(self._on_connection_result)
        self.node_selected.emit("")
        self.update()

    def delete_node(self, node_id: str) -> None:
        if self._store.remove_node(node_id).ok:
            self._geometry.forget_node(node_id)
            self.node_deleted.emit(node_id)
            logger.debug(f"Deleted node {node_id}")

    def delete_connection(self, connection_id: str) -> None:
        if self._store.remove_connection(connection_id).ok:
            self.connection_deleted.emit(connection_id)
            logger.debug(f"Deleted connection {connection_id}")

    def center_on_nodes(self) -> None:
        """Center the view on the bounding box of all nodes."""
        nodes = self._store.get_nodes()
        if not nodes:
            return
        rects = [self._geometry.node_rect(n) for n in nodes]
        left = min(r.x for r in rects)
        top = min(r.y for r in rects)
        right = max(r.right for r in rects)
        bottom = max(r.bottom for r in rects)
        self._viewport.center_on(
            Point((left + right) / 2, (top + bottom) / 2), self.width(), self.height()
        )

    def _on_mode_changed(self, mode: InteractionMode) -> None:
        if mode == InteractionMode.PANNING:
            self.setCursor(Qt.CursorShape.ClosedHandCursor)
        elif mode == InteractionMode.RESIZING:
            self.setCursor(Qt.CursorShape.SizeFDiagCursor)
        elif mode == InteractionMode.CONNECTING:
            self.setCursor(Qt.CursorShape.CrossCursor)
        else:
            self.setCursor(Qt.CursorShape.ArrowCursor)
        self.update()

    def _on_connection_result(self, conn: Connection, result: MutationResult) -> None:
        if result.ok:
            self.status_message.emit(f"Connected {conn.from_node_id} -> {conn.to_node_id}")
        elif result == MutationResult.DUPLICATE:
            self.status_message.emit("Connection already exists")
        elif conn.from_node_id == conn.to_node_id:
            self.status_message.emit("Cannot connect node to itself")
        else:
            self.status_message.emit("Parameter is already connected or socket is disabled")

    def _canvas_point(self, pos: QPointF) -> Point:
        return self._viewport.to_canvas(Point(pos.x(), pos.y()))

    # Painting
    def paintEvent(self, event: QPaintEvent) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), NodePainter.BACKGROUND_COLOR)

        view = self._viewport.view_state
        painter.save()
        painter.scale(view.scale, view.scale)
        painter.translate(view.pan.x, view.pan.y)

        top_left = self._viewport.to_canvas(Point(0, 0))
        bottom_right = self._viewport.to_canvas(Point(self.width(), self.height()))
        visible = QRectF(top_left.x, top_left.y, bottom_right.x - top_left.x, bottom_right.y - top_left.y)
        self._painter.paint_grid(painter, visible)
        self._painter.paint_graph(
            painter,
            selected_node_id=self._interaction.selected_node_id,
            highlighted_connection_id=self._hover_connection_id,
        )

        band = self._interaction.rubber_band()
        if band is not None:
            self._painter.paint_connection(painter, *band, dashed=True)

        painter.restore()
        painter.end()

    # Event handlers
    def wheelEvent(self, event: QWheelEvent) -> None:
        """Zoom at the cursor; one notch is 120 units of angle delta."""
        pos = event.position()
        self._interaction.wheel(Point(pos.x(), pos.y()), -event.angleDelta().y())
        event.accept()

    def mousePressEvent(self, event: QMouseEvent) -> None:
        pointer = _pointer_event(event)
        if pointer.button == PointerButton.LEFT and not pointer.alt:
            hit = self._interaction.hit_test(pointer.position)
            if hit.kind == HitKind.CANVAS:
                conn_id = self._geometry.connection_at(self._canvas_point(event.position()))
                if conn_id is not None:
                    self.delete_connection(conn_id)
                    self.status_message.emit("Connection removed")
                    event.accept()
                    return

        if self._interaction.pointer_down(pointer):
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        self._interaction.pointer_move(_pointer_event(event))
        if self._interaction.mode == InteractionMode.CONNECTING:
            self.update()
        elif self._interaction.mode == InteractionMode.IDLE:
            hovered = self._geometry.connection_at(self._canvas_point(event.position()))
            if hovered != self._hover_connection_id:
                self._hover_connection_id = hovered
                self.update()

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if self._interaction.mode != InteractionMode.IDLE:
            self._interaction.pointer_up(_pointer_event(event))
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        """Handle keyboard shortcuts."""
        selected = self._interaction.selected_node_id
        if event.key() == Qt.Key.Key_Delete and selected:
            self.delete_node(selected)
        elif event.key() == Qt.Key.Key_Escape:
            self._interaction.cancel()
        elif event.key() == Qt.Key.Key_Home:
            self._viewport.reset()
        elif event.key() == Qt.Key.Key_F:
            self.center_on_nodes()
        elif event.key() == Qt.Key.Key_E and selected:
            self.execute_requested.emit(selected)
        else:
            super().keyPressEvent(event)

    def contextMenuEvent(self, event: QContextMenuEvent) -> None:
        """Show context menu."""
        pos = event.pos()
        device = Point(pos.x(), pos.y())
        canvas = self._viewport.to_canvas(device)
        hit = self._interaction.hit_test(device)

        menu = QMenu(self)
        menu.addAction("Add HTTP Node", lambda: self.add_node_requested.emit(canvas.x, canvas.y))

        if hit.node_id is not None:
            node_id = hit.node_id
            menu.addSeparator()
            menu.addAction("Execute Node", lambda: self.execute_requested.emit(node_id))
            menu.addAction("Delete Node", lambda: self.delete_node(node_id))
        else:
            conn_id = self._geometry.connection_at(canvas)
            if conn_id is not None:
                menu.addSeparator()
                menu.addAction("Delete Connection", lambda: self.delete_connection(conn_id))

        menu.addSeparator()
        menu.addAction("Reset View", self._viewport.reset)
        menu.exec(event.globalPos())
