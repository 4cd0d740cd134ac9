"""
Node Painter - Draws nodes, sockets and connections with QPainter.

All drawing happens in canvas coordinates; the view installs the
viewport transform on the painter beforehand.
"""

import json
from typing import Optional

from PyQt6.QtCore import QPointF, QRectF, Qt
from PyQt6.QtGui import QBrush, QColor, QFont, QPainter, QPainterPath, QPen

from apiflow.canvas.geometry import Rect, SocketGeometry, bezier_controls
from apiflow.core.models import Node, Point
from apiflow.core.types import RequestStatus, SocketDirection

STATUS_COLORS = {
    RequestStatus.IDLE: QColor(108, 117, 125),
    RequestStatus.LOADING: QColor(255, 193, 7),
    RequestStatus.SUCCESS: QColor(40, 167, 69),
    RequestStatus.ERROR: QColor(220, 53, 69),
}

RESPONSE_PREVIEW_LINES = 8


def _qpoint(point: Point) -> QPointF:
    return QPointF(point.x, point.y)


def connection_path(start: Point, end: Point) -> QPainterPath:
    """Bezier path between two canvas points."""
    c1, c2 = bezier_controls(start, end)
    path = QPainterPath()
    path.moveTo(_qpoint(start))
    path.cubicTo(_qpoint(c1), _qpoint(c2), _qpoint(end))
    return path


class NodePainter:
    """Paints the graph for NodeGraphView."""

    CORNER_RADIUS = 8

    # Colors
    BACKGROUND_COLOR = QColor(30, 30, 30)
    GRID_COLOR = QColor(50, 50, 50)
    GRID_COLOR_MAJOR = QColor(70, 70, 70)
    BODY_COLOR = QColor(45, 45, 48)
    HEADER_COLOR = QColor(60, 60, 70)
    BORDER_COLOR = QColor(80, 80, 90)
    SELECTED_BORDER_COLOR = QColor(255, 165, 0)
    TEXT_COLOR = QColor(220, 220, 220)
    MUTED_TEXT_COLOR = QColor(150, 150, 150)
    CONNECTION_COLOR = QColor(100, 180, 255)
    INPUT_SOCKET_COLOR = QColor(0, 123, 255)
    CONNECTED_SOCKET_COLOR = QColor(40, 167, 69)

    def __init__(self, geometry: SocketGeometry):
        self._geometry = geometry
        self._config = geometry.config

    def paint_grid(self, painter: QPainter, visible: QRectF) -> None:
        """Draw minor and major grid lines over the visible canvas rect."""
        size = self._config.grid_size
        for step, color, width in ((size, self.GRID_COLOR, 0.5), (size * 5, self.GRID_COLOR_MAJOR, 1.0)):
            painter.setPen(QPen(color, width))
            x = visible.left() - (visible.left() % step)
            while x < visible.right():
                painter.drawLine(QPointF(x, visible.top()), QPointF(x, visible.bottom()))
                x += step
            y = visible.top() - (visible.top() % step)
            while y < visible.bottom():
                painter.drawLine(QPointF(visible.left(), y), QPointF(visible.right(), y))
                y += step

    def paint_connection(self, painter: QPainter, start: Point, end: Point,
                         dashed: bool = False, highlighted: bool = False) -> None:
        pen = QPen(self.SELECTED_BORDER_COLOR if highlighted else self.CONNECTION_COLOR, 2)
        if dashed:
            pen.setStyle(Qt.PenStyle.DashLine)
        painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawPath(connection_path(start, end))

    def paint_node(self, painter: QPainter, node: Node, selected: bool = False) -> None:
        r = self._geometry.node_rect(node)
        rect = QRectF(r.x, r.y, r.width, r.height)
        header_height = self._config.header_height

        # Body
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(self.BODY_COLOR))
        painter.drawRoundedRect(rect, self.CORNER_RADIUS, self.CORNER_RADIUS)

        # Header
        header_rect = QRectF(rect.x(), rect.y(), rect.width(), header_height)
        painter.setBrush(QBrush(self.HEADER_COLOR))
        painter.drawRoundedRect(header_rect, self.CORNER_RADIUS, self.CORNER_RADIUS)
        painter.drawRect(QRectF(rect.x(), rect.y() + header_height - self.CORNER_RADIUS,
                                rect.width(), self.CORNER_RADIUS))

        # Border
        if selected:
            painter.setPen(QPen(self.SELECTED_BORDER_COLOR, 3))
        else:
            painter.setPen(QPen(self.BORDER_COLOR, 2))
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRoundedRect(rect, self.CORNER_RADIUS, self.CORNER_RADIUS)

        self._paint_header_text(painter, node, header_rect)
        self._paint_sockets(painter, node)
        self._paint_response(painter, node, rect)
        self._paint_resize_handle(painter, node)

    def _paint_header_text(self, painter: QPainter, node: Node, header_rect: QRectF) -> None:
        runtime = node.runtime
        status_color = STATUS_COLORS[runtime.status]

        # Method badge
        painter.setFont(QFont("Segoe UI", 10, QFont.Weight.Bold))
        badge = QRectF(header_rect.x() + 12, header_rect.y() + 14, 70, 24)
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(QColor(0, 123, 255)))
        painter.drawRoundedRect(badge, 4, 4)
        painter.setPen(QPen(QColor(255, 255, 255)))
        painter.drawText(badge, Qt.AlignmentFlag.AlignCenter, node.request.method.value)

        # Status dot and label
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(status_color))
        painter.drawEllipse(QPointF(header_rect.right() - 20, header_rect.y() + 26), 6, 6)
        painter.setPen(QPen(self.MUTED_TEXT_COLOR))
        painter.setFont(QFont("Segoe UI", 9))
        painter.drawText(
            QRectF(header_rect.right() - 130, header_rect.y() + 14, 100, 24),
            Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter,
            runtime.status.value,
        )

        # URL
        painter.setPen(QPen(self.TEXT_COLOR))
        url_rect = QRectF(header_rect.x() + 12, header_rect.y() + 48, header_rect.width() - 24, 22)
        url = painter.fontMetrics().elidedText(
            node.request.url or "(no url)", Qt.TextElideMode.ElideMiddle, int(url_rect.width())
        )
        painter.drawText(url_rect, Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter, url)

        # Node id and validation
        painter.setPen(QPen(self.MUTED_TEXT_COLOR))
        detail = node.id
        if runtime.validation is not None:
            detail += "  valid" if runtime.validation.is_valid else "  invalid"
        if runtime.error is not None:
            detail += f"  {runtime.error.message}"
        painter.drawText(
            QRectF(header_rect.x() + 12, header_rect.y() + 76, header_rect.width() - 24, 22),
            Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter,
            painter.fontMetrics().elidedText(detail, Qt.TextElideMode.ElideRight,
                                             int(header_rect.width() - 24)),
        )

    def _lay_out_socket(self, node: Node, socket_id: str,
                        direction: SocketDirection) -> Optional[Point]:
        """Place a socket marker and record its rectangle for hit testing."""
        local = self._geometry.fixed_socket_position(node, socket_id, direction)
        if local is None:
            return None
        radius = self._config.socket_radius
        self._geometry.record_layout(
            node.id, socket_id, direction,
            Rect(local.x - radius, local.y - radius, 2 * radius, 2 * radius),
        )
        return local

    def _paint_sockets(self, painter: QPainter, node: Node) -> None:
        radius = self._config.socket_radius
        painter.setFont(QFont("Segoe UI", 9))
        # Sockets removed since the last pass must not keep stale rectangles
        self._geometry.forget_node(node.id)

        for param in node.request.parameters:
            local = self._lay_out_socket(node, param.id, SocketDirection.INPUT)
            if local is None:
                continue
            centre = _qpoint(node.position + local)
            color = self.CONNECTED_SOCKET_COLOR if param.has_connection else self.INPUT_SOCKET_COLOR
            painter.setPen(QPen(QColor(255, 255, 255), 1.5))
            painter.setBrush(QBrush(color))
            painter.drawEllipse(centre, radius, radius)

            painter.setPen(QPen(self.TEXT_COLOR if param.enabled else self.MUTED_TEXT_COLOR))
            value = "" if param.value is None else str(param.value)
            label = f"{param.key or '(unnamed)'} = {value}" if value else param.key or "(unnamed)"
            painter.drawText(QPointF(centre.x() + radius + 8, centre.y() + 4),
                             painter.fontMetrics().elidedText(
                                 label, Qt.TextElideMode.ElideRight,
                                 int(node.size.width / 2 - radius - 16)))

        for socket in node.request.visible_output_sockets:
            local = self._lay_out_socket(node, socket.id, SocketDirection.OUTPUT)
            if local is None:
                continue
            centre = _qpoint(node.position + local)
            painter.setPen(QPen(QColor(255, 255, 255), 1.5))
            painter.setBrush(QBrush(QColor(socket.type.color)))
            painter.drawEllipse(centre, radius, radius)

            painter.setPen(QPen(self.TEXT_COLOR))
            text_width = painter.fontMetrics().horizontalAdvance(socket.label)
            painter.drawText(QPointF(centre.x() - radius - 8 - text_width, centre.y() + 4), socket.label)

    def _paint_response(self, painter: QPainter, node: Node, rect: QRectF) -> None:
        response = node.runtime.response
        if response is None:
            return

        outputs = len(node.request.visible_output_sockets)
        inputs = len(node.request.parameters)
        pitch = self._config.socket_pitch
        top = rect.y() + max(
            self._config.output_socket_top + outputs * pitch,
            self._config.input_socket_top + inputs * pitch,
        )
        area = QRectF(rect.x() + 12, top, rect.width() - 24, rect.bottom() - top - 20)
        if area.height() <= 0:
            return

        if isinstance(response.data, (dict, list)):
            text = json.dumps(response.data, indent=2)
        else:
            text = "" if response.data is None else str(response.data)
        lines = [f"{response.status} {response.status_text}"]
        lines += text.splitlines()[:RESPONSE_PREVIEW_LINES]

        painter.setPen(QPen(self.MUTED_TEXT_COLOR))
        painter.setFont(QFont("Consolas", 8))
        painter.drawText(area, Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop, "\n".join(lines))

    def _paint_resize_handle(self, painter: QPainter, node: Node) -> None:
        handle = self._geometry.resize_handle_rect(node)
        painter.setPen(QPen(self.MUTED_TEXT_COLOR, 1.5))
        for offset in (4, 8, 12):
            painter.drawLine(
                QPointF(handle.right - offset, handle.bottom - 2),
                QPointF(handle.right - 2, handle.bottom - offset),
            )

    def paint_graph(self, painter: QPainter, selected_node_id: Optional[str] = None,
                    highlighted_connection_id: Optional[str] = None) -> None:
        """Connections first, then nodes so that nodes sit on top."""
        store = self._geometry.store
        for conn in store.get_connections():
            endpoints = self._geometry.connection_endpoints(conn.id)
            if endpoints is None:
                continue
            self.paint_connection(painter, *endpoints, highlighted=conn.id == highlighted_connection_id)

        for node in store.get_nodes():
            self.paint_node(painter, node, selected=node.id == selected_node_id)