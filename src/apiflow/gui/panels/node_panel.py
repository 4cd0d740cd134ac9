"""
Node Panel - Edit the selected node's request and inspect its response.

Every edit is proposed through NodeBinding.on_data_change(); the panel
never writes to the GraphStore directly.
"""

import json
import logging
from dataclasses import replace
from typing import Optional

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QPushButton,
    QScrollArea,
    QSpinBox,
    QTableWidget,
    QTableWidgetItem,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from apiflow.core.graph_store import GraphStore
from apiflow.core.models import Node
from apiflow.core.node_binding import NodeBinding
from apiflow.core.path_extractor import discover_fields
from apiflow.core.types import DataType, HttpMethod, MutationResult

logger = logging.getLogger(__name__)


class NodePanel(QWidget):
    """
    Panel for editing one HttpApi node.

    Signals:
        execute_requested: Emitted when the user runs the node
    """

    execute_requested = pyqtSignal(str)  # node_id

    def __init__(self, store: GraphStore, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self._store = store
        self._binding: Optional[NodeBinding] = None
        self._last_request = None
        self._updating = False  # Prevent recursive updates

        self._setup_ui()
        self._connect_signals()
        self._store.on_change(self._on_store_changed)
        self.set_node(None)

    def _setup_ui(self) -> None:
        """Set up the panel UI."""
        main_layout = QVBoxLayout(self)
        main_layout.setContentsMargins(0, 0, 0, 0)

        scroll_area = QScrollArea()
        scroll_area.setWidgetResizable(True)
        scroll_area.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        scroll_area.setStyleSheet("QScrollArea { border: none; }")

        content = QWidget()
        layout = QVBoxLayout(content)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(8)

        self._title_label = QLabel("No node selected")
        self._title_label.setStyleSheet("font-weight: bold;")
        layout.addWidget(self._title_label)

        # Request group
        request_group = QGroupBox("Request")
        request_layout = QFormLayout(request_group)
        self._method_combo = QComboBox()
        self._method_combo.addItems([m.value for m in HttpMethod])
        request_layout.addRow("Method:", self._method_combo)
        self._url_edit = QLineEdit()
        self._url_edit.setPlaceholderText("https://api.example.com/resource")
        request_layout.addRow("URL:", self._url_edit)
        self._body_edit = QTextEdit()
        self._body_edit.setPlaceholderText('{"key": "value"}')
        self._body_edit.setMaximumHeight(100)
        request_layout.addRow("Body:", self._body_edit)
        layout.addWidget(request_group)

        # Parameters
        params_group = QGroupBox("Parameters")
        params_layout = QVBoxLayout(params_group)
        self._params_table = self._create_table(["Key", "Value", "On"])
        params_layout.addWidget(self._params_table)
        params_buttons = QHBoxLayout()
        self._add_param_btn = QPushButton("Add")
        self._remove_param_btn = QPushButton("Remove")
        params_buttons.addWidget(self._add_param_btn)
        params_buttons.addWidget(self._remove_param_btn)
        params_buttons.addStretch()
        params_layout.addLayout(params_buttons)
        layout.addWidget(params_group)

        # Headers
        headers_group = QGroupBox("Headers")
        headers_layout = QVBoxLayout(headers_group)
        self._headers_table = self._create_table(["Key", "Value", "On"])
        headers_layout.addWidget(self._headers_table)
        headers_buttons = QHBoxLayout()
        self._add_header_btn = QPushButton("Add")
        self._remove_header_btn = QPushButton("Remove")
        headers_buttons.addWidget(self._add_header_btn)
        headers_buttons.addWidget(self._remove_header_btn)
        headers_buttons.addStretch()
        headers_layout.addLayout(headers_buttons)
        layout.addWidget(headers_group)

        # Output sockets
        outputs_group = QGroupBox("Output Sockets")
        outputs_layout = QVBoxLayout(outputs_group)
        self._outputs_table = self._create_table(["Name", "Path", "On"])
        outputs_layout.addWidget(self._outputs_table)
        outputs_buttons = QHBoxLayout()
        self._add_output_btn = QPushButton("Add")
        self._remove_output_btn = QPushButton("Remove")
        self._field_combo = QComboBox()
        self._field_combo.setToolTip("Add an output socket for a field of the last response")
        outputs_buttons.addWidget(self._add_output_btn)
        outputs_buttons.addWidget(self._remove_output_btn)
        outputs_buttons.addWidget(self._field_combo, 1)
        outputs_layout.addLayout(outputs_buttons)
        layout.addWidget(outputs_group)

        # Validation
        validation_group = QGroupBox("Validation")
        validation_layout = QFormLayout(validation_group)
        self._extract_edit = QLineEdit()
        self._extract_edit.setPlaceholderText("data.items[0]")
        validation_layout.addRow("Extract path:", self._extract_edit)
        self._status_spin = QSpinBox()
        self._status_spin.setRange(0, 599)
        self._status_spin.setSpecialValueText("Any")
        validation_layout.addRow("Expected status:", self._status_spin)
        self._validation_edit = QLineEdit()
        self._validation_edit.setPlaceholderText("status == 200 && data.length > 0")
        validation_layout.addRow("Expression:", self._validation_edit)
        layout.addWidget(validation_group)

        # Response
        response_group = QGroupBox("Response")
        response_layout = QVBoxLayout(response_group)
        self._status_label = QLabel("idle")
        response_layout.addWidget(self._status_label)
        self._response_view = QTextEdit()
        self._response_view.setReadOnly(True)
        self._response_view.setStyleSheet("font-family: Consolas, monospace;")
        response_layout.addWidget(self._response_view)
        layout.addWidget(response_group)

        self._execute_btn = QPushButton("Execute")
        layout.addWidget(self._execute_btn)
        layout.addStretch()

        scroll_area.setWidget(content)
        main_layout.addWidget(scroll_area)

    def _create_table(self, columns) -> QTableWidget:
        table = QTableWidget(0, len(columns))
        table.setHorizontalHeaderLabels(columns)
        table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        table.verticalHeader().setVisible(False)
        header = table.horizontalHeader()
        header.setSectionResizeMode(0, QHeaderView.ResizeMode.Stretch)
        header.setSectionResizeMode(1, QHeaderView.ResizeMode.Stretch)
        header.setSectionResizeMode(2, QHeaderView.ResizeMode.ResizeToContents)
        table.setMaximumHeight(140)
        return table

    def _connect_signals(self) -> None:
        self._method_combo.currentTextChanged.connect(lambda v: self._propose("method", v))
        self._url_edit.editingFinished.connect(lambda: self._propose("url", self._url_edit.text()))
        self._body_edit.textChanged.connect(lambda: self._propose("body", self._body_edit.toPlainText()))
        self._extract_edit.editingFinished.connect(
            lambda: self._propose("extract_path", self._extract_edit.text()))
        self._status_spin.valueChanged.connect(lambda v: self._propose("expected_status", v or None))
        self._validation_edit.editingFinished.connect(
            lambda: self._propose("validation", self._validation_edit.text()))

        self._params_table.itemChanged.connect(self._on_param_item_changed)
        self._headers_table.itemChanged.connect(self._on_header_item_changed)
        self._outputs_table.itemChanged.connect(self._on_output_item_changed)

        self._add_param_btn.clicked.connect(lambda: self._call("add_parameter"))
        self._remove_param_btn.clicked.connect(
            lambda: self._call("remove_parameter", self._params_table.currentRow()))
        self._add_header_btn.clicked.connect(lambda: self._call("add_header"))
        self._remove_header_btn.clicked.connect(
            lambda: self._call("remove_header", self._headers_table.currentRow()))
        self._add_output_btn.clicked.connect(lambda: self._call("add_output_socket"))
        self._remove_output_btn.clicked.connect(
            lambda: self._call("remove_output_socket", self._outputs_table.currentRow()))
        self._field_combo.activated.connect(self._on_field_chosen)

        self._execute_btn.clicked.connect(self._on_execute_clicked)

    # Binding
    def set_node(self, node_id: Optional[str]) -> None:
        """Show the given node, or an empty disabled panel for None."""
        node = self._store.get_node(node_id) if node_id else None
        self._binding = NodeBinding(self._store, node.id) if node else None
        self._last_request = None
        self.setEnabled(node is not None)
        if node is None:
            self._title_label.setText("No node selected")
            return
        self._refresh(node)

    def set_store(self, store: GraphStore) -> None:
        self._store = store
        self._store.on_change(self._on_store_changed)
        self.set_node(None)

    def _propose(self, key: str, value) -> None:
        if self._updating or self._binding is None:
            return
        result = self._binding.on_data_change(key, value)
        if result != MutationResult.OK:
            logger.debug(f"Edit to '{key}' rejected: {result.name}")

    def _call(self, method: str, *args) -> None:
        if self._binding is None:
            return
        getattr(self._binding, method)(*args)

    def _on_store_changed(self) -> None:
        if self._binding is None:
            return
        node = self._store.get_node(self._binding.node_id)
        if node is None:
            self.set_node(None)
            return
        self._refresh(node)

    def _refresh(self, node: Node) -> None:
        self._updating = True
        try:
            self._title_label.setText(node.title)
            if node.request != self._last_request:
                self._load_request(node)
                self._last_request = node.request
            self._load_runtime(node)
        finally:
            self._updating = False

    def _load_request(self, node: Node) -> None:
        spec = node.request
        self._method_combo.setCurrentText(spec.method.value)
        if not self._url_edit.hasFocus():
            self._url_edit.setText(spec.url)
        if not self._body_edit.hasFocus():
            self._body_edit.setPlainText(spec.body)
        if not self._extract_edit.hasFocus():
            self._extract_edit.setText(spec.extract_path)
        self._status_spin.setValue(spec.expected_status or 0)
        if not self._validation_edit.hasFocus():
            self._validation_edit.setText(spec.validation)

        self._params_table.setRowCount(len(spec.parameters))
        for row, param in enumerate(spec.parameters):
            self._set_row(self._params_table, row, param.key,
                          "" if param.value is None else str(param.value), param.enabled,
                          locked_value=param.has_connection)

        self._headers_table.setRowCount(len(spec.headers))
        for row, header in enumerate(spec.headers):
            self._set_row(self._headers_table, row, header.key, header.value, header.enabled)

        self._outputs_table.setRowCount(len(spec.output_sockets))
        for row, socket in enumerate(spec.output_sockets):
            self._set_row(self._outputs_table, row, socket.name, socket.path, socket.enabled)

    def _set_row(self, table: QTableWidget, row: int, first: str, second: str,
                 enabled: bool, locked_value: bool = False) -> None:
        table.setItem(row, 0, QTableWidgetItem(first))
        value_item = QTableWidgetItem(second)
        if locked_value:
            value_item.setFlags(value_item.flags() & ~Qt.ItemFlag.ItemIsEditable)
            value_item.setToolTip("Supplied by a connection")
        table.setItem(row, 1, value_item)
        check = QTableWidgetItem()
        check.setFlags(Qt.ItemFlag.ItemIsUserCheckable | Qt.ItemFlag.ItemIsEnabled)
        check.setCheckState(Qt.CheckState.Checked if enabled else Qt.CheckState.Unchecked)
        table.setItem(row, 2, check)

    def _load_runtime(self, node: Node) -> None:
        runtime = node.runtime
        status = runtime.status.value
        if runtime.validation is not None:
            status += " (valid)" if runtime.validation.is_valid else " (invalid)"
        if runtime.error is not None:
            code = f" [{runtime.error.code}]" if runtime.error.code else ""
            status += f": {runtime.error.message}{code}"
        self._status_label.setText(status)
        self._execute_btn.setEnabled(not runtime.status.is_busy)

        response = runtime.response
        if response is None:
            self._response_view.setPlainText("")
            self._field_combo.clear()
            return

        self._response_view.setPlainText(json.dumps(response.to_dict(), indent=2, default=str))
        self._field_combo.clear()
        self._field_combo.addItem("Add from response...")
        for info in discover_fields(response.data):
            if info.path:
                self._field_combo.addItem(f"{info.path}  ({info.type.value}) {info.preview}", info)

    def _row_flag(self, item: QTableWidgetItem) -> bool:
        return item.checkState() == Qt.CheckState.Checked

    def _on_param_item_changed(self, item: QTableWidgetItem) -> None:
        if self._updating:
            return
        field = ("key", "value", "enabled")[item.column()]
        value = self._row_flag(item) if field == "enabled" else item.text()
        self._call("update_parameter", item.row(), field, value)

    def _on_header_item_changed(self, item: QTableWidgetItem) -> None:
        if self._updating:
            return
        field = ("key", "value", "enabled")[item.column()]
        value = self._row_flag(item) if field == "enabled" else item.text()
        self._call("update_header", item.row(), field, value)

    def _on_output_item_changed(self, item: QTableWidgetItem) -> None:
        if self._updating:
            return
        field = ("name", "path", "enabled")[item.column()]
        value = self._row_flag(item) if field == "enabled" else item.text()
        self._call("update_output_socket", item.row(), field, value)

    def _on_field_chosen(self, index: int) -> None:
        info = self._field_combo.itemData(index)
        if info is None or self._binding is None:
            return
        self._binding.add_output_socket(name=info.name, path=info.path, type=info.type)

    def _on_execute_clicked(self) -> None:
        if self._binding is not None:
            self.execute_requested.emit(self._binding.node_id)
