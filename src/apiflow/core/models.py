"""
Graph Data Model - Nodes, sockets, connections and per-node runtime state.

Every configuration dataclass is serializable to a plain dict. Runtime
state is kept in memory only and is never written by to_dict().
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from apiflow.core.types import DataType, HttpMethod, RequestStatus

NODE_KIND_HTTP_API = "HttpApi"


def generate_id(prefix: str = "item") -> str:
    """Generate a short unique id such as ``param_1a2b3c4d``."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class Point:
    """A 2D point, in canvas or device space depending on context."""
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: "Point") -> "Point":
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(self.x - other.x, self.y - other.y)

    def scaled(self, factor: float) -> "Point":
        return Point(self.x * factor, self.y * factor)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Point":
        return cls(x=float(data.get("x", 0.0)), y=float(data.get("y", 0.0)))


@dataclass(frozen=True)
class Size:
    """Node size; a height of None means the node sizes itself ("auto")."""
    width: float = 450.0
    height: Optional[float] = None

    @property
    def is_auto_height(self) -> bool:
        return self.height is None

    def to_dict(self) -> Dict[str, Any]:
        return {"width": self.width, "height": "auto" if self.height is None else self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Size":
        height = data.get("height", "auto")
        return cls(
            width=float(data.get("width", 450.0)),
            height=None if height in (None, "auto") else float(height),
        )


@dataclass
class Header:
    """A single request header row."""
    key: str = ""
    value: str = ""
    enabled: bool = True
    id: str = field(default_factory=lambda: generate_id("header"))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "key": self.key, "value": self.value, "enabled": self.enabled}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Header":
        return cls(
            id=data.get("id") or generate_id("header"),
            key=data.get("key", ""),
            value=data.get("value", ""),
            enabled=data.get("enabled", True),
        )


@dataclass
class Parameter:
    """
    A request parameter, which doubles as the node's input socket.

    When has_connection is set the value is supplied by an upstream node.
    """
    key: str = ""
    value: Any = ""
    type: DataType = DataType.STRING
    enabled: bool = True
    has_connection: bool = False
    id: str = field(default_factory=lambda: generate_id("param"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "type": self.type.value,
            "enabled": self.enabled,
            "hasConnection": self.has_connection,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Parameter":
        return cls(
            id=data.get("id") or generate_id("param"),
            key=data.get("key", ""),
            value=data.get("value", ""),
            type=DataType.from_string_safe(data.get("type", "string")),
            enabled=data.get("enabled", True),
            has_connection=data.get("hasConnection", data.get("has_connection", False)),
        )


@dataclass
class OutputSocket:
    """An output socket exposing a path into the node's last response body."""
    name: str = ""
    path: str = ""
    type: DataType = DataType.STRING
    enabled: bool = True
    id: str = field(default_factory=lambda: generate_id("output"))

    @property
    def label(self) -> str:
        """Name shown next to the socket marker."""
        if self.name:
            return self.name
        if self.path:
            return self.path.split(".")[-1]
        return "output"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "type": self.type.value,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutputSocket":
        return cls(
            id=data.get("id") or generate_id("output"),
            name=data.get("name", ""),
            path=data.get("path", ""),
            type=DataType.from_string_safe(data.get("type", "string")),
            enabled=data.get("enabled", True),
        )


@dataclass
class RequestSpec:
    """Everything the user configures about a node's HTTP call."""
    method: HttpMethod = HttpMethod.GET
    url: str = ""
    headers: List[Header] = field(default_factory=list)
    parameters: List[Parameter] = field(default_factory=list)
    output_sockets: List[OutputSocket] = field(default_factory=list)
    body: str = ""

    # Response processing
    extract_path: str = ""
    expected_status: Optional[int] = 200
    validation: str = ""

    def get_parameter(self, parameter_id: str) -> Optional[Parameter]:
        for param in self.parameters:
            if param.id == parameter_id:
                return param
        return None

    def get_output_socket(self, socket_id: str) -> Optional[OutputSocket]:
        for socket in self.output_sockets:
            if socket.id == socket_id:
                return socket
        return None

    @property
    def visible_output_sockets(self) -> List[OutputSocket]:
        """Output sockets drawn on the canvas: enabled and pointing somewhere."""
        return [s for s in self.output_sockets if s.enabled and s.path]

    def with_parameter_value(self, parameter_id: str, value: Any) -> "RequestSpec":
        """Return a copy whose matching parameter carries ``value``."""
        params = [
            replace(p, value=value) if p.id == parameter_id else p
            for p in self.parameters
        ]
        return replace(self, parameters=params)

    def with_parameter_connected(self, parameter_id: str, connected: bool) -> "RequestSpec":
        """Return a copy whose matching parameter has ``has_connection`` set."""
        params = [
            replace(p, has_connection=connected) if p.id == parameter_id else p
            for p in self.parameters
        ]
        return replace(self, parameters=params)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "url": self.url,
            "headers": [h.to_dict() for h in self.headers],
            "parameters": [p.to_dict() for p in self.parameters],
            "outputSockets": [s.to_dict() for s in self.output_sockets],
            "body": self.body,
            "extractPath": self.extract_path,
            "expectedStatus": self.expected_status,
            "validation": self.validation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestSpec":
        return cls(
            method=HttpMethod.from_string_safe(data.get("method", "GET")) or HttpMethod.GET,
            url=data.get("url", ""),
            headers=[Header.from_dict(h) for h in data.get("headers", [])],
            parameters=[Parameter.from_dict(p) for p in data.get("parameters", [])],
            output_sockets=[OutputSocket.from_dict(s) for s in data.get("outputSockets", [])],
            body=data.get("body", ""),
            extract_path=data.get("extractPath", ""),
            expected_status=data.get("expectedStatus", 200),
            validation=data.get("validation", ""),
        )


@dataclass
class HttpResponse:
    """A response as returned by the HTTP executor."""
    status: int
    status_text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "statusText": self.status_text,
            "headers": dict(self.headers),
            "data": self.data,
        }


@dataclass
class RequestErrorInfo:
    """The part of a RequestError kept on the node after a failure."""
    message: str
    code: Optional[str] = None


@dataclass
class ValidationResult:
    """Outcome of response processing for a successful request."""
    extracted: Any = None
    is_valid: bool = False
    status_valid: bool = False
    custom_valid: bool = False


@dataclass
class RuntimeState:
    """Per-node execution state, written only by the execution engine."""
    status: RequestStatus = RequestStatus.IDLE
    response: Optional[HttpResponse] = None
    error: Optional[RequestErrorInfo] = None
    extracted: Any = None
    validation: Optional[ValidationResult] = None


@dataclass
class Node:
    """An HttpApi node on the canvas."""
    id: str
    position: Point = field(default_factory=Point)
    size: Size = field(default_factory=Size)
    request: RequestSpec = field(default_factory=RequestSpec)
    runtime: RuntimeState = field(default_factory=RuntimeState)
    kind: str = NODE_KIND_HTTP_API

    @property
    def title(self) -> str:
        return f"{self.request.method.value} {self.request.url or '(no url)'}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "position": self.position.to_dict(),
            "size": self.size.to_dict(),
            "request": self.request.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        return cls(
            id=data["id"],
            kind=data.get("kind", NODE_KIND_HTTP_API),
            position=Point.from_dict(data.get("position", {})),
            size=Size.from_dict(data.get("size", {})),
            request=RequestSpec.from_dict(data.get("request", {})),
        )


@dataclass(frozen=True)
class Connection:
    """A directed edge from an output socket to an input parameter."""
    id: str
    from_node_id: str
    from_socket_id: str
    to_node_id: str
    to_socket_id: str

    @property
    def endpoints(self) -> tuple:
        """The identity tuple used for duplicate detection."""
        return (self.from_node_id, self.from_socket_id, self.to_node_id, self.to_socket_id)

    def touches(self, node_id: str) -> bool:
        return self.from_node_id == node_id or self.to_node_id == node_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from_node": self.from_node_id,
            "from_socket": self.from_socket_id,
            "to_node": self.to_node_id,
            "to_socket": self.to_socket_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        return cls(
            id=data.get("id") or generate_id("conn"),
            from_node_id=data["from_node"],
            from_socket_id=data["from_socket"],
            to_node_id=data["to_node"],
            to_socket_id=data["to_socket"],
        )
