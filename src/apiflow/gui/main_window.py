"""
Main Window - The primary PyQt6 window for APIFlow.

Hosts the node canvas in the centre and the node editor panel in a dock,
and wires both to the GraphStore and the FlowEngine.
"""

import asyncio
import logging
import time
from typing import Optional

from PyQt6.QtCore import Qt, pyqtSignal, pyqtSlot
from PyQt6.QtGui import QAction, QKeySequence
from PyQt6.QtWidgets import (
    QApplication,
    QDockWidget,
    QFileDialog,
    QLabel,
    QMainWindow,
    QMessageBox,
    QSizePolicy,
    QStatusBar,
    QToolBar,
    QWidget,
)

from apiflow.core.config import get_config
from apiflow.core.demo import create_http_node
from apiflow.core.flow_engine import FlowEngine
from apiflow.core.graph_store import GraphStore
from apiflow.core.models import Point
from apiflow.core.types import RequestStatus
from apiflow.gui.node_graph.graph_view import NodeGraphView
from apiflow.gui.panels.node_panel import NodePanel

logger = logging.getLogger(__name__)

FILE_FILTER = "APIFlow Graphs (*.apiflow);;JSON Files (*.json);;All Files (*)"
SHUTDOWN_TIMEOUT = 5.0


class MainWindow(QMainWindow):
    """
    Main application window.

    Signals:
        graph_changed: Emitted when a different graph is shown (new/open)
    """

    graph_changed = pyqtSignal()

    def __init__(self, engine: FlowEngine):
        """
        Initialize the main window.

        Args:
            engine: FlowEngine executing the graph shown in the window
        """
        super().__init__()

        self._engine = engine

        # Async task tracking to prevent garbage collection
        self._pending_tasks: set = set()

        self._graph_view: Optional[NodeGraphView] = None
        self._node_panel: Optional[NodePanel] = None
        self._properties_dock: Optional[QDockWidget] = None

        self._setup_window()
        self._setup_ui()
        self._setup_menu()
        self._setup_toolbar()
        self._setup_status_bar()
        self._connect_signals()
        self._update_title()

        logger.info("MainWindow initialized")

    @property
    def engine(self) -> FlowEngine:
        return self._engine

    @property
    def store(self) -> GraphStore:
        return self._engine.store

    @property
    def graph_view(self) -> NodeGraphView:
        return self._graph_view

    @property
    def node_panel(self) -> NodePanel:
        return self._node_panel

    def _setup_window(self) -> None:
        """Configure the main window properties."""
        ui = get_config().ui
        self.setMinimumSize(ui.min_window_width, ui.min_window_height)
        self.resize(ui.default_window_width, ui.default_window_height)

    def _setup_ui(self) -> None:
        """Set up the canvas and the node editor dock."""
        self._graph_view = NodeGraphView(self.store)
        self.setCentralWidget(self._graph_view)

        self._properties_dock = QDockWidget("Node", self)
        self._properties_dock.setAllowedAreas(
            Qt.DockWidgetArea.LeftDockWidgetArea | Qt.DockWidgetArea.RightDockWidgetArea
        )
        self._node_panel = NodePanel(self.store)
        self._properties_dock.setWidget(self._node_panel)
        self._properties_dock.setMinimumWidth(360)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, self._properties_dock)

    def _setup_menu(self) -> None:
        """Set up the menu bar."""
        menubar = self.menuBar()

        # File menu
        file_menu = menubar.addMenu("&File")

        new_action = QAction("&New", self)
        new_action.setShortcut(QKeySequence.StandardKey.New)
        new_action.triggered.connect(self._on_new)
        file_menu.addAction(new_action)

        open_action = QAction("&Open...", self)
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.triggered.connect(self._on_open)
        file_menu.addAction(open_action)

        file_menu.addSeparator()

        save_action = QAction("&Save", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self._on_save)
        file_menu.addAction(save_action)

        save_as_action = QAction("Save &As...", self)
        save_as_action.setShortcut(QKeySequence("Ctrl+Shift+S"))
        save_as_action.triggered.connect(self._on_save_as)
        file_menu.addAction(save_as_action)

        file_menu.addSeparator()

        exit_action = QAction("E&xit", self)
        exit_action.setShortcut(QKeySequence.StandardKey.Quit)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        # Flow menu
        flow_menu = menubar.addMenu("F&low")

        add_node_action = QAction("&Add HTTP Node", self)
        add_node_action.setShortcut(QKeySequence("Ctrl+Shift+N"))
        add_node_action.triggered.connect(self._on_add_node)
        flow_menu.addAction(add_node_action)

        flow_menu.addSeparator()

        run_action = QAction("&Execute Flow", self)
        run_action.setShortcut(QKeySequence("F5"))
        run_action.triggered.connect(self._on_execute_flow)
        flow_menu.addAction(run_action)

        run_selected_action = QAction("Execute &Selected Node", self)
        run_selected_action.setShortcut(QKeySequence("Shift+F5"))
        run_selected_action.triggered.connect(self._on_execute_selected)
        flow_menu.addAction(run_selected_action)

        stop_action = QAction("S&top", self)
        stop_action.setShortcut(QKeySequence("Ctrl+."))
        stop_action.triggered.connect(self._on_stop)
        flow_menu.addAction(stop_action)

        # View menu
        view_menu = menubar.addMenu("&View")

        reset_view_action = QAction("&Reset View", self)
        reset_view_action.setShortcut(QKeySequence("Ctrl+0"))
        reset_view_action.triggered.connect(lambda: self._graph_view.viewport.reset())
        view_menu.addAction(reset_view_action)

        fit_action = QAction("&Fit to Nodes", self)
        fit_action.triggered.connect(lambda: self._graph_view.center_on_nodes())
        view_menu.addAction(fit_action)

        view_menu.addSeparator()
        view_menu.addAction(self._properties_dock.toggleViewAction())

        # Help menu
        help_menu = menubar.addMenu("&Help")

        about_action = QAction("&About", self)
        about_action.triggered.connect(self._on_about)
        help_menu.addAction(about_action)

    def _setup_toolbar(self) -> None:
        """Set up the toolbar."""
        toolbar = QToolBar("Main Toolbar")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        new_action = toolbar.addAction("New")
        new_action.triggered.connect(self._on_new)

        open_action = toolbar.addAction("Open")
        open_action.triggered.connect(self._on_open)

        save_action = toolbar.addAction("Save")
        save_action.triggered.connect(self._on_save)

        toolbar.addSeparator()

        add_action = toolbar.addAction("Add HTTP Node")
        add_action.triggered.connect(self._on_add_node)

        toolbar.addSeparator()

        run_action = toolbar.addAction("Execute Flow")
        run_action.triggered.connect(self._on_execute_flow)

        run_selected_action = toolbar.addAction("Execute Selected")
        run_selected_action.triggered.connect(self._on_execute_selected)

        stop_action = toolbar.addAction("Stop")
        stop_action.triggered.connect(self._on_stop)

        toolbar.addSeparator()

        reset_action = toolbar.addAction("Reset View")
        reset_action.triggered.connect(lambda: self._graph_view.viewport.reset())

        # Add spacer to push status to the right
        spacer = QWidget()
        spacer.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Preferred)
        toolbar.addWidget(spacer)

        self._toolbar_status = QLabel("IDLE")
        toolbar.addWidget(self._toolbar_status)

    def _setup_status_bar(self) -> None:
        """Set up the status bar."""
        status_bar = QStatusBar()
        self.setStatusBar(status_bar)
        self._counts_label = QLabel()
        status_bar.addPermanentWidget(self._counts_label)
        status_bar.showMessage("Ready")
        self._update_counts()

    def _connect_signals(self) -> None:
        """Connect internal signals."""
        self._graph_view.node_selected.connect(self._on_node_selected)
        self._graph_view.add_node_requested.connect(self._on_add_node_at)
        self._graph_view.execute_requested.connect(self._execute_node)
        self._graph_view.status_message.connect(lambda msg: self.statusBar().showMessage(msg, 3000))
        self._node_panel.execute_requested.connect(self._execute_node)
        self._connect_model()

    def _connect_model(self) -> None:
        self.store.on_change(self._on_store_changed)
        self._engine.on_node_status(self._on_node_status)
        self._engine.on_error(self._on_node_error)

    # Model callbacks
    def _on_store_changed(self) -> None:
        self._update_counts()
        self._update_title()

    def _on_node_status(self, node_id: str, status: RequestStatus) -> None:
        # The reporting node's task is still alive here, so read node statuses
        loading = any(n.runtime.status.is_busy for n in self.store.get_nodes())
        self._toolbar_status.setText("RUNNING" if loading else "IDLE")
        if status == RequestStatus.SUCCESS:
            self.statusBar().showMessage(f"{node_id} succeeded", 3000)

    def _on_node_error(self, node_id: str, error: Exception) -> None:
        self.statusBar().showMessage(f"{node_id} failed: {error}", 5000)

    def _on_node_selected(self, node_id: str) -> None:
        self._node_panel.set_node(node_id or None)

    def _update_counts(self) -> None:
        self._counts_label.setText(
            f"{self.store.node_count} nodes, {self.store.connection_count} connections"
        )

    def _update_title(self) -> None:
        name = self.store.file_path or "Untitled"
        dirty = "*" if self.store.is_dirty else ""
        self.setWindowTitle(f"APIFlow - {name}{dirty}")

    # Graph replacement
    def _replace_store(self, store: GraphStore) -> None:
        """Show a new graph; in-flight requests of the old one are cancelled."""
        old_engine = self._engine
        self._run_async(old_engine.cancel())
        self._engine = FlowEngine(store, executor=old_engine.executor)
        self._graph_view.set_store(store)
        self._node_panel.set_store(store)
        self._connect_model()
        self._update_counts()
        self._update_title()
        self.graph_changed.emit()

    # File operations
    def _on_new(self) -> None:
        """Start an empty graph."""
        if self._check_save():
            self._replace_store(GraphStore(allow_fan_in=self.store.allow_fan_in))
            self.statusBar().showMessage("New graph")

    def _on_open(self) -> None:
        """Open a graph file."""
        if not self._check_save():
            return

        file_path, _ = QFileDialog.getOpenFileName(self, "Open Graph", "", FILE_FILTER)

        if file_path:
            self.open_file(file_path)

    def open_file(self, file_path: str) -> bool:
        try:
            store = GraphStore.load(file_path, allow_fan_in=self.store.allow_fan_in)
        except (OSError, ValueError, KeyError) as e:
            logger.exception(f"Failed to open file: {e}")
            QMessageBox.critical(self, "Error", f"Failed to open file: {e}")
            return False
        self._replace_store(store)
        self._graph_view.center_on_nodes()
        self.statusBar().showMessage(f"Opened: {file_path}")
        return True

    def _on_save(self) -> None:
        """Save the graph."""
        if self.store.file_path:
            try:
                self.store.save()
                self._update_title()
                self.statusBar().showMessage("Saved")
            except OSError as e:
                QMessageBox.critical(self, "Error", f"Failed to save: {e}")
        else:
            self._on_save_as()

    def _on_save_as(self) -> None:
        """Save the graph as a new file."""
        file_path, _ = QFileDialog.getSaveFileName(self, "Save Graph", "", FILE_FILTER)

        if file_path:
            extension = get_config().paths.graph_extension
            if "." not in file_path.rsplit("/", 1)[-1]:
                file_path += extension
            try:
                self.store.save(file_path)
                self._update_title()
                self.statusBar().showMessage(f"Saved: {file_path}")
            except OSError as e:
                QMessageBox.critical(self, "Error", f"Failed to save: {e}")

    def _check_save(self) -> bool:
        """Check if the current graph should be saved. Returns True to proceed."""
        if self.store.is_dirty and self.store.node_count:
            result = QMessageBox.question(
                self,
                "Save Changes?",
                "The current graph has unsaved changes. Save before continuing?",
                QMessageBox.StandardButton.Save |
                QMessageBox.StandardButton.Discard |
                QMessageBox.StandardButton.Cancel,
            )

            if result == QMessageBox.StandardButton.Save:
                self._on_save()
                return not self.store.is_dirty
            elif result == QMessageBox.StandardButton.Cancel:
                return False

        return True

    # Flow operations
    def _on_add_node(self) -> None:
        """Add a node at the centre of the visible canvas."""
        centre = self._graph_view.viewport.to_canvas(
            Point(self._graph_view.width() / 2, self._graph_view.height() / 2)
        )
        self._on_add_node_at(centre.x, centre.y)

    def _on_add_node_at(self, x: float, y: float) -> None:
        node = create_http_node(Point(x, y))
        self.store.add_node(node)
        self._graph_view.interaction.select(node.id)
        logger.debug(f"Added node {node.id} at ({x:.0f}, {y:.0f})")

    @pyqtSlot()
    def _on_execute_flow(self) -> None:
        """Execute every node that has no incoming connection."""
        started = self._engine.execute_roots(skip_busy=True)
        if started:
            self._toolbar_status.setText("RUNNING")
            self.statusBar().showMessage(f"Executing {len(started)} root node(s)")
        else:
            self.statusBar().showMessage("Nothing to execute")

    @pyqtSlot()
    def _on_execute_selected(self) -> None:
        node_id = self._graph_view.selected_node_id
        if node_id:
            self._execute_node(node_id)
        else:
            self.statusBar().showMessage("Select a node first", 3000)

    def _execute_node(self, node_id: str) -> None:
        node = self.store.get_node(node_id)
        if node is not None and node.runtime.status.is_busy:
            self.statusBar().showMessage(f"{node_id} is already running", 3000)
            return
        if self._engine.execute(node_id):
            self._toolbar_status.setText("RUNNING")

    @pyqtSlot()
    def _on_stop(self) -> None:
        """Cancel every in-flight request."""
        self._run_async(self._stop_async())

    async def _stop_async(self) -> None:
        await self._engine.cancel()
        self._toolbar_status.setText("IDLE")
        self.statusBar().showMessage("Stopped")

    def _on_about(self) -> None:
        """Show about dialog."""
        QMessageBox.about(
            self,
            "About APIFlow",
            "APIFlow - Visual HTTP API flow editor\n\n"
            "Version 1.0.0\n\n"
            "Chain HTTP requests by wiring response fields into request parameters."
        )

    def _run_async(self, coro) -> asyncio.Task:
        """
        Run an async coroutine with proper task tracking.

        This prevents garbage collection of the task before completion
        and ensures proper cleanup on application exit.
        """
        task = asyncio.ensure_future(coro)
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        return task

    def closeEvent(self, event) -> None:
        """Handle window close event."""
        if self._check_save():
            for task in self._pending_tasks:
                if not task.done():
                    task.cancel()
            self._pending_tasks.clear()

            # Close the HTTP client before the event loop goes away
            future = asyncio.ensure_future(self._engine.shutdown())
            deadline = time.monotonic() + SHUTDOWN_TIMEOUT
            while not future.done() and time.monotonic() < deadline:
                QApplication.processEvents()
                time.sleep(0.01)
            if not future.done():
                logger.warning("Shutdown timed out")
            event.accept()
        else:
            event.ignore()
