"""
Request Builder - Turns a node's RequestSpec into a wire-ready descriptor.

GET and DELETE send their parameters in the query string. POST, PUT and
PATCH merge them into the JSON object body. A body that is not a JSON
object is sent untouched and flagged as opaque.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from apiflow.core.errors import RequestError
from apiflow.core.models import Header, Parameter, RequestSpec
from apiflow.core.types import HttpMethod

logger = logging.getLogger(__name__)


@dataclass
class RequestDescriptor:
    """What the HTTP executor receives."""
    method: HttpMethod
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


@dataclass
class BuiltRequest:
    """A descriptor plus notes about how it was assembled."""
    descriptor: RequestDescriptor
    body_is_opaque: bool = False


def headers_to_dict(headers: List[Header]) -> Dict[str, str]:
    """Keep only enabled headers that have both a key and a value."""
    return {h.key: h.value for h in headers if h.enabled and h.key and h.value}


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def build_query(parameters: List[Parameter]) -> List[Tuple[str, str]]:
    """Enabled, keyed parameters with a non-empty value, in order."""
    return [
        (p.key, _query_value(p.value))
        for p in parameters
        if p.enabled and p.key and p.value is not None and p.value != ""
    ]


def append_query(url: str, pairs: List[Tuple[str, str]]) -> str:
    if not pairs:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(pairs)}"


def merge_body(body: str, parameters: List[Parameter]) -> Tuple[str, bool]:
    """
    Merge parameters into a JSON object body.

    Returns:
        Tuple of (body text, is_opaque). An empty body counts as ``{}``.
        A body that does not decode to a JSON object comes back unchanged
        with is_opaque set.
    """
    text = body.strip() if body else ""
    if text:
        try:
            payload = json.loads(text)
        except ValueError as e:
            logger.warning(f"Request body is not valid JSON, sending as-is: {e}")
            return body, True
        if not isinstance(payload, dict):
            logger.warning("Request body is not a JSON object, parameters not merged")
            return body, True
    else:
        payload = {}

    for param in parameters:
        if param.enabled and param.key and param.value is not None:
            payload[param.key] = param.value

    return json.dumps(payload), False


def build_request(spec: RequestSpec, default_content_type: str = "application/json") -> BuiltRequest:
    """
    Build the final request for a node.

    Args:
        spec: The node's request configuration
        default_content_type: Content-Type added to JSON bodies when none is set

    Raises:
        RequestError: If the node has no URL
    """
    url = spec.url.strip()
    if not url:
        raise RequestError("URL is required", code="ERR_INVALID_URL")

    headers = headers_to_dict(spec.headers)
    body: Optional[str] = None
    opaque = False

    if spec.method.has_body:
        body, opaque = merge_body(spec.body, spec.parameters)
        has_content_type = any(k.lower() == "content-type" for k in headers)
        if not opaque and not has_content_type and default_content_type:
            headers["Content-Type"] = default_content_type
    else:
        url = append_query(url, build_query(spec.parameters))

    descriptor = RequestDescriptor(method=spec.method, url=url, headers=headers, body=body)
    return BuiltRequest(descriptor=descriptor, body_is_opaque=opaque)
