"""
Demo graph and node factory used by the editor on startup.
"""

import json
import logging
import random
from typing import Optional

from apiflow.core.config import get_config
from apiflow.core.graph_store import GraphStore
from apiflow.core.models import (
    Connection,
    Header,
    Node,
    OutputSocket,
    Parameter,
    Point,
    RequestSpec,
    Size,
    generate_id,
)
from apiflow.core.types import HttpMethod

logger = logging.getLogger(__name__)

DEFAULT_NODE_URL = "https://jsonplaceholder.typicode.com/users"


def create_http_node(position: Optional[Point] = None, url: str = DEFAULT_NODE_URL) -> Node:
    """Create a fresh GET node; a random position is picked when none is given."""
    if position is None:
        position = Point(random.random() * 400 + 100, random.random() * 300 + 100)
    return Node(
        id=generate_id("api"),
        position=position,
        size=Size(width=get_config().canvas.node_width),
        request=RequestSpec(method=HttpMethod.GET, url=url),
    )


def create_demo_graph(store: GraphStore) -> None:
    """
    Seed a three node chain.

    get-uuid fetches a UUID, post-data posts it as session_id, and
    get-request-info queries with the trace id httpbin echoed back.
    """
    width = get_config().canvas.node_width

    get_uuid = Node(
        id="get-uuid",
        position=Point(50, 200),
        size=Size(width=width),
        request=RequestSpec(
            method=HttpMethod.GET,
            url="https://httpbin.org/uuid",
            output_sockets=[
                OutputSocket(id="output-uuid", name="UUID", path="uuid"),
            ],
        ),
    )

    post_data = Node(
        id="post-data",
        position=Point(550, 200),
        size=Size(width=width),
        request=RequestSpec(
            method=HttpMethod.POST,
            url="https://httpbin.org/anything",
            headers=[
                Header(id="header-1", key="Content-Type", value="application/json"),
            ],
            body=json.dumps({"message": "Hello from APIFlow!", "session_id": ""}),
            parameters=[
                Parameter(id="param-session-id", key="session_id"),
            ],
            output_sockets=[
                OutputSocket(id="output-request-id", name="Request ID", path="headers.X-Amzn-Trace-Id"),
            ],
        ),
    )

    get_request_info = Node(
        id="get-request-info",
        position=Point(1050, 200),
        size=Size(width=width),
        request=RequestSpec(
            method=HttpMethod.GET,
            url="https://httpbin.org/headers",
            headers=[
                Header(id="header-1", key="X-Trace-ID", value=""),
            ],
            parameters=[
                Parameter(id="param-trace-id", key="X-Trace-ID"),
            ],
        ),
    )

    for node in (get_uuid, post_data, get_request_info):
        store.add_node(node)

    store.add_connection(Connection(
        id="conn-1",
        from_node_id="get-uuid",
        from_socket_id="output-uuid",
        to_node_id="post-data",
        to_socket_id="param-session-id",
    ))
    store.add_connection(Connection(
        id="conn-2",
        from_node_id="post-data",
        from_socket_id="output-request-id",
        to_node_id="get-request-info",
        to_socket_id="param-trace-id",
    ))

    logger.info(f"Demo graph created with {store.node_count} nodes")
