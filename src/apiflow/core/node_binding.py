"""
Node Binding - The single write path from form widgets into a node.

Widgets propose keyed patches through on_data_change(); the binding
converts them to RequestSpec copies and commits them with
GraphStore.update_node(). Values of connected parameters belong to their
upstream node and cannot be edited here.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from apiflow.core.graph_store import GraphStore
from apiflow.core.models import Header, OutputSocket, Parameter, RequestSpec
from apiflow.core.types import DataType, HttpMethod, MutationResult

logger = logging.getLogger(__name__)

# Alternate spellings accepted from widgets
KEY_ALIASES = {
    "outputSockets": "output_sockets",
    "extractPath": "extract_path",
    "expectedStatus": "expected_status",
}

HEADER_FIELDS = ("key", "value", "enabled")
PARAMETER_FIELDS = ("key", "value", "type", "enabled")
OUTPUT_SOCKET_FIELDS = ("name", "path", "type", "enabled")


def _rows(value: Any, row_type) -> List[Any]:
    """Accept a list of dataclasses, a list of dicts or a JSON string."""
    if isinstance(value, str):
        value = json.loads(value) if value.strip() else []
    return [row if isinstance(row, row_type) else row_type.from_dict(row) for row in value]


def _status(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


class NodeBinding:
    """Binds editing widgets for one node to the GraphStore."""

    def __init__(self, store: GraphStore, node_id: str):
        self._store = store
        self._node_id = node_id
        self._converters: Dict[str, Callable[[RequestSpec, Any], Optional[RequestSpec]]] = {
            "method": self._set_method,
            "url": lambda spec, v: replace(spec, url=str(v)),
            "body": lambda spec, v: replace(spec, body="" if v is None else str(v)),
            "headers": lambda spec, v: replace(spec, headers=_rows(v, Header)),
            "parameters": self._set_parameters,
            "output_sockets": self._set_output_sockets,
            "extract_path": lambda spec, v: replace(spec, extract_path=str(v or "")),
            "expected_status": lambda spec, v: replace(spec, expected_status=_status(v)),
            "validation": lambda spec, v: replace(spec, validation=str(v or "")),
        }

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def request(self) -> Optional[RequestSpec]:
        node = self._store.get_node(self._node_id)
        return node.request if node else None

    def on_data_change(self, key: str, value: Any) -> MutationResult:
        """
        Apply one keyed edit from a widget.

        Args:
            key: One of method, url, body, headers, parameters,
                output_sockets, extract_path, expected_status, validation
            value: New value for that field

        Returns:
            The store's result, or INVALID for an unknown key, a value that
            cannot be converted, or an edit to a connected parameter's value
        """
        key = KEY_ALIASES.get(key, key)
        converter = self._converters.get(key)
        if converter is None:
            logger.warning(f"Unknown node field '{key}'")
            return MutationResult.INVALID

        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND

        try:
            new_spec = converter(spec, value)
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Rejected value for '{key}': {e}")
            return MutationResult.INVALID
        if new_spec is None:
            return MutationResult.INVALID

        self._prune_connections(spec, new_spec)
        return self._store.update_node(self._node_id, {"request": new_spec})

    def _set_method(self, spec: RequestSpec, value: Any) -> Optional[RequestSpec]:
        method = value if isinstance(value, HttpMethod) else HttpMethod.from_string_safe(str(value))
        if method is None:
            logger.warning(f"Unsupported HTTP method '{value}'")
            return None
        return replace(spec, method=method)

    def _set_parameters(self, spec: RequestSpec, value: Any) -> Optional[RequestSpec]:
        params = []
        for param in _rows(value, Parameter):
            current = spec.get_parameter(param.id)
            connected = current is not None and current.has_connection
            if connected and param.value != current.value:
                logger.warning(f"Parameter '{current.key}' is connected; its value cannot be edited")
                return None
            # Connection state is owned by the store, not by widgets
            params.append(replace(param, has_connection=connected))
        return replace(spec, parameters=params)

    def _set_output_sockets(self, spec: RequestSpec, value: Any) -> RequestSpec:
        return replace(spec, output_sockets=_rows(value, OutputSocket))

    def _prune_connections(self, old: RequestSpec, new: RequestSpec) -> None:
        """Drop connections whose parameter or output socket was removed."""
        removed_params = {p.id for p in old.parameters} - {p.id for p in new.parameters}
        removed_sockets = {s.id for s in old.output_sockets} - {s.id for s in new.output_sockets}
        if not removed_params and not removed_sockets:
            return
        for conn in self._store.get_connections():
            dangling_input = conn.to_node_id == self._node_id and conn.to_socket_id in removed_params
            dangling_output = conn.from_node_id == self._node_id and conn.from_socket_id in removed_sockets
            if dangling_input or dangling_output:
                self._store.remove_connection(conn.id)

    # Row helpers

    def _update_rows(self, key: str, rows: List[Any]) -> MutationResult:
        return self.on_data_change(key, rows)

    def add_header(self, key: str = "", value: str = "") -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        return self._update_rows("headers", spec.headers + [Header(key=key, value=value)])

    def remove_header(self, index: int) -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        if not 0 <= index < len(spec.headers):
            return MutationResult.NOT_FOUND
        return self._update_rows("headers", [h for i, h in enumerate(spec.headers) if i != index])

    def update_header(self, index: int, field: str, value: Any) -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        if field not in HEADER_FIELDS:
            return MutationResult.INVALID
        if not 0 <= index < len(spec.headers):
            return MutationResult.NOT_FOUND
        headers = list(spec.headers)
        headers[index] = replace(headers[index], **{field: value})
        return self._update_rows("headers", headers)

    def add_parameter(self, key: str = "", value: Any = "") -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        return self._update_rows("parameters", spec.parameters + [Parameter(key=key, value=value)])

    def remove_parameter(self, index: int) -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        if not 0 <= index < len(spec.parameters):
            return MutationResult.NOT_FOUND
        return self._update_rows(
            "parameters", [p for i, p in enumerate(spec.parameters) if i != index]
        )

    def update_parameter(self, index: int, field: str, value: Any) -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        if field not in PARAMETER_FIELDS:
            return MutationResult.INVALID
        if not 0 <= index < len(spec.parameters):
            return MutationResult.NOT_FOUND
        if field == "type":
            value = value if isinstance(value, DataType) else DataType.from_string_safe(value)
        params = list(spec.parameters)
        params[index] = replace(params[index], **{field: value})
        return self._update_rows("parameters", params)

    def add_output_socket(self, name: str = "", path: str = "",
                          type: DataType = DataType.STRING) -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        sockets = spec.output_sockets + [OutputSocket(name=name, path=path, type=type)]
        return self._update_rows("output_sockets", sockets)

    def remove_output_socket(self, index: int) -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        if not 0 <= index < len(spec.output_sockets):
            return MutationResult.NOT_FOUND
        return self._update_rows(
            "output_sockets", [s for i, s in enumerate(spec.output_sockets) if i != index]
        )

    def update_output_socket(self, index: int, field: str, value: Any) -> MutationResult:
        spec = self.request
        if spec is None:
            return MutationResult.NOT_FOUND
        if field not in OUTPUT_SOCKET_FIELDS:
            return MutationResult.INVALID
        if not 0 <= index < len(spec.output_sockets):
            return MutationResult.NOT_FOUND
        if field == "type":
            value = value if isinstance(value, DataType) else DataType.from_string_safe(value)
        sockets = list(spec.output_sockets)
        sockets[index] = replace(sockets[index], **{field: value})
        return self._update_rows("output_sockets", sockets)
