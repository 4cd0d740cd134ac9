"""
Centralized Type Definitions for APIFlow.

This module provides the enums shared by the graph model, the execution
engine and the canvas, replacing stringly-typed logic throughout the codebase.
"""

from enum import Enum, auto
from typing import Any


class HttpMethod(Enum):
    """HTTP methods an HttpApi node can issue."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"

    @classmethod
    def from_string(cls, method: str) -> "HttpMethod":
        """
        Convert a string to HttpMethod enum.

        Args:
            method: Method name, case-insensitive (e.g., "get", "POST")

        Returns:
            Corresponding HttpMethod enum value

        Raises:
            ValueError: If the string doesn't match any known method
        """
        normalized = method.strip().upper()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown HTTP method: {method}")

    @classmethod
    def from_string_safe(cls, method: str) -> "HttpMethod | None":
        """Convert a string to HttpMethod enum, returning None if not found."""
        try:
            return cls.from_string(method)
        except ValueError:
            return None

    @property
    def has_body(self) -> bool:
        """Whether parameters are merged into the request body."""
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)


class RequestStatus(Enum):
    """Runtime status of a node's last request."""
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_busy(self) -> bool:
        """Whether a request is in flight for the node."""
        return self == RequestStatus.LOADING


class DataType(Enum):
    """
    Value types for parameters, output sockets and discovered fields.

    Mirrors JSON value kinds; NULL is kept separate from OBJECT.
    """
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    NULL = "null"

    @classmethod
    def from_value(cls, value: Any) -> "DataType":
        """Infer the data type of a decoded JSON value."""
        # bool is a subclass of int, so it must be checked first
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, (int, float)):
            return cls.NUMBER
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, (list, tuple)):
            return cls.ARRAY
        if value is None:
            return cls.NULL
        return cls.OBJECT

    @classmethod
    def from_string_safe(cls, type_str: str) -> "DataType":
        """Convert a string to DataType, falling back to STRING."""
        for member in cls:
            if member.value == type_str:
                return member
        return cls.STRING

    @property
    def color(self) -> str:
        """Display colour used for sockets of this type."""
        return TYPE_COLORS.get(self, TYPE_COLORS[DataType.STRING])


TYPE_COLORS = {
    DataType.STRING: "#28a745",
    DataType.NUMBER: "#007bff",
    DataType.BOOLEAN: "#ffc107",
    DataType.ARRAY: "#6f42c1",
    DataType.OBJECT: "#fd7e14",
    DataType.NULL: "#6c757d",
}


class SocketDirection(Enum):
    """Which side of a node a socket lives on."""
    INPUT = "input"
    OUTPUT = "output"


class MutationResult(Enum):
    """
    Outcome of a Graph Store mutation.

    Store operations never raise for bad ids; they report one of these.
    """
    OK = auto()
    NOT_FOUND = auto()
    DUPLICATE = auto()
    INVALID = auto()

    @property
    def ok(self) -> bool:
        return self == MutationResult.OK


class InteractionMode(Enum):
    """The drag gesture currently owned by the canvas."""
    IDLE = auto()
    PANNING = auto()
    DRAGGING_NODE = auto()
    RESIZING = auto()
    CONNECTING = auto()

    @property
    def is_dragging(self) -> bool:
        return self != InteractionMode.IDLE


class HitKind(Enum):
    """What lies under a canvas point."""
    CANVAS = auto()
    NODE_BODY = auto()
    NODE_HEADER = auto()
    RESIZE_HANDLE = auto()
    INPUT_SOCKET = auto()
    OUTPUT_SOCKET = auto()
