"""
Tests for the editor widgets.

Runs offscreen through pytest-qt.
"""

from unittest.mock import MagicMock

import pytest
from PyQt6.QtCore import QPoint, Qt

from apiflow.core.flow_engine import FlowEngine
from apiflow.core.models import HttpResponse, Point, RuntimeState
from apiflow.core.types import HttpMethod, RequestStatus, SocketDirection
from apiflow.gui.main_window import MainWindow
from apiflow.gui.node_graph import NodeGraphView
from apiflow.gui.panels import NodePanel

pytestmark = pytest.mark.gui


@pytest.fixture
def view(qtbot, linked_store):
    widget = NodeGraphView(linked_store)
    qtbot.addWidget(widget)
    widget.resize(1200, 800)
    return widget


@pytest.fixture
def panel(qtbot, linked_store):
    widget = NodePanel(linked_store)
    qtbot.addWidget(widget)
    return widget


class TestNodeGraphView:
    """Tests for NodeGraphView."""

    def test_renders(self, view, linked_store):
        """Test painting nodes, connections and runtime states."""
        linked_store.update_node("source", {"runtime": RuntimeState(status=RequestStatus.SUCCESS)})
        linked_store.update_node("target", {"runtime": RuntimeState(status=RequestStatus.ERROR)})
        assert not view.grab().isNull()

    def test_painting_records_socket_layouts(self, view, default_config):
        """Test that each paint pass records the socket rectangles it drew."""
        geometry = view.geometry_resolver
        assert geometry.recorded_layout("target", "in", SocketDirection.INPUT) is None

        view.grab()

        rect = geometry.recorded_layout("target", "in", SocketDirection.INPUT)
        assert rect.center == Point(0, 185)
        assert rect.width == 2 * default_config.canvas.socket_radius
        assert geometry.recorded_layout("source", "out", SocketDirection.OUTPUT).center == Point(450, 250)

    def test_click_header_selects(self, qtbot, view):
        """Test that pressing a node header selects it."""
        with qtbot.waitSignal(view.node_selected) as blocker:
            qtbot.mousePress(view, Qt.MouseButton.LeftButton, pos=QPoint(100, 50))

        assert blocker.args == ["source"]
        assert view.selected_node_id == "source"

    def test_click_connection_deletes_it(self, qtbot, view, linked_store):
        """Test click-to-delete on a connection curve."""
        with qtbot.waitSignal(view.connection_deleted) as blocker:
            qtbot.mousePress(view, Qt.MouseButton.LeftButton, pos=QPoint(525, 218))

        assert blocker.args == ["conn-1"]
        assert linked_store.connection_count == 0

    def test_delete_key_removes_selected_node(self, qtbot, view, linked_store):
        """Test the Delete shortcut."""
        view.interaction.select("target")
        qtbot.keyClick(view, Qt.Key.Key_Delete)

        assert linked_store.get_node("target") is None
        assert linked_store.connection_count == 0

    def test_home_resets_view(self, qtbot, view):
        """Test the Home shortcut."""
        view.viewport.set_state(1.5, Point(20, 20))
        qtbot.keyClick(view, Qt.Key.Key_Home)
        assert view.viewport.scale == 1.0

    def test_set_store(self, view, store, make_source):
        """Test switching to another graph."""
        store.add_node(make_source("other"))
        view.set_store(store)

        assert view.store is store
        assert view.geometry_resolver.store is store
        assert view.interaction.hit_test(Point(100, 50)).node_id == "other"


class TestNodePanel:
    """Tests for NodePanel."""

    def test_empty_panel_is_disabled(self, panel):
        """Test the panel with no node selected."""
        assert not panel.isEnabled()

    def test_loads_node(self, panel):
        """Test that the form shows the node's request."""
        panel.set_node("target")

        assert panel.isEnabled()
        assert panel._method_combo.currentText() == "POST"
        assert panel._url_edit.text() == "https://api.test/target"
        assert panel._params_table.rowCount() == 1
        assert panel._params_table.item(0, 0).text() == "session_id"

    def test_connected_value_is_read_only(self, panel):
        """Test that upstream-owned values cannot be typed into."""
        panel.set_node("target")
        item = panel._params_table.item(0, 1)
        assert not item.flags() & Qt.ItemFlag.ItemIsEditable

    def test_edits_go_to_store(self, panel, linked_store):
        """Test that form edits update the node."""
        panel.set_node("target")

        panel._url_edit.setText("https://api.test/v2")
        panel._url_edit.editingFinished.emit()
        panel._method_combo.setCurrentText("PUT")

        request = linked_store.get_node("target").request
        assert request.url == "https://api.test/v2"
        assert request.method == HttpMethod.PUT

    def test_add_parameter_button(self, panel, linked_store):
        """Test the row buttons."""
        panel.set_node("target")
        panel._add_param_btn.click()

        assert len(linked_store.get_node("target").request.parameters) == 2
        assert panel._params_table.rowCount() == 2

    def test_shows_runtime(self, panel, linked_store):
        """Test the response section."""
        panel.set_node("source")
        linked_store.update_node("source", {"runtime": RuntimeState(
            status=RequestStatus.SUCCESS,
            response=HttpResponse(status=200, data={"uuid": "abc"}),
        )})

        assert panel._status_label.text() == "success"
        assert '"uuid": "abc"' in panel._response_view.toPlainText()
        assert panel._field_combo.count() == 2

    def test_removed_node_clears_panel(self, panel, linked_store):
        """Test that deleting the shown node empties the panel."""
        panel.set_node("target")
        linked_store.remove_node("target")
        assert not panel.isEnabled()

    def test_execute_button(self, qtbot, panel):
        """Test that Execute asks for the shown node to run."""
        panel.set_node("source")
        with qtbot.waitSignal(panel.execute_requested) as blocker:
            panel._execute_btn.click()
        assert blocker.args == ["source"]


@pytest.fixture
def window(qapp, linked_store):
    engine = MagicMock(spec=FlowEngine)
    engine.store = linked_store
    engine.execute_roots.return_value = ["source"]
    # Not handed to qtbot: closing the window shuts the engine down on a running loop
    return MainWindow(engine)


class TestMainWindowExecution:
    """Tests for the window's execute paths."""

    def test_canvas_execute_queues_idle_node(self, window):
        """Test that an idle node is handed to the engine."""
        window.graph_view.execute_requested.emit("source")
        window.engine.execute.assert_called_once_with("source")

    def test_loading_node_is_not_resubmitted(self, window, linked_store):
        """Test that a node with a request in flight cannot be queued again."""
        linked_store.update_node("source", {"runtime": RuntimeState(status=RequestStatus.LOADING)})

        window.graph_view.execute_requested.emit("source")
        window.node_panel.execute_requested.emit("source")

        window.engine.execute.assert_not_called()
        assert window.statusBar().currentMessage() == "source is already running"

    def test_execute_flow_skips_loading_roots(self, window):
        """Test that Execute Flow leaves in-flight roots alone."""
        window._on_execute_flow()
        window.engine.execute_roots.assert_called_once_with(skip_busy=True)
