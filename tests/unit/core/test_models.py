"""
Tests for apiflow.core.models module.

Tests the graph data model and its dict serialization.
"""

from apiflow.core.models import (
    Connection,
    Header,
    Node,
    OutputSocket,
    Parameter,
    Point,
    RequestSpec,
    RuntimeState,
    Size,
    generate_id,
)
from apiflow.core.types import DataType, HttpMethod, RequestStatus


class TestPoint:
    """Tests for Point dataclass."""

    def test_arithmetic(self):
        """Test addition, subtraction and scaling."""
        assert Point(1, 2) + Point(3, 4) == Point(4, 6)
        assert Point(5, 5) - Point(2, 1) == Point(3, 4)
        assert Point(2, -4).scaled(0.5) == Point(1, -2)


class TestSize:
    """Tests for Size dataclass."""

    def test_auto_height_round_trip(self):
        """Test that auto height serializes as "auto"."""
        size = Size(width=450)
        assert size.is_auto_height
        assert size.to_dict() == {"width": 450, "height": "auto"}
        assert Size.from_dict(size.to_dict()) == size

    def test_fixed_height(self):
        """Test a fixed height."""
        size = Size.from_dict({"width": 300, "height": 250})
        assert size.height == 250.0
        assert not size.is_auto_height


class TestGenerateId:
    """Tests for generate_id."""

    def test_prefix_and_uniqueness(self):
        """Test that ids carry the prefix and do not repeat."""
        ids = {generate_id("param") for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("param_") for i in ids)


class TestOutputSocket:
    """Tests for OutputSocket dataclass."""

    def test_label_prefers_name(self):
        """Test the label shown beside the socket."""
        assert OutputSocket(name="User", path="data.user").label == "User"
        assert OutputSocket(path="data.user.id").label == "id"
        assert OutputSocket().label == "output"


class TestRequestSpec:
    """Tests for RequestSpec dataclass."""

    def test_defaults(self):
        """Test RequestSpec default values."""
        spec = RequestSpec()

        assert spec.method == HttpMethod.GET
        assert spec.url == ""
        assert spec.expected_status == 200
        assert spec.parameters == []

    def test_visible_output_sockets(self):
        """Test that disabled and pathless sockets are hidden."""
        spec = RequestSpec(output_sockets=[
            OutputSocket(id="a", path="x"),
            OutputSocket(id="b", path=""),
            OutputSocket(id="c", path="y", enabled=False),
        ])
        assert [s.id for s in spec.visible_output_sockets] == ["a"]

    def test_with_parameter_value_copies(self):
        """Test that parameter updates leave the original untouched."""
        spec = RequestSpec(parameters=[Parameter(id="p", key="k", value="old")])
        updated = spec.with_parameter_value("p", "new")

        assert updated.get_parameter("p").value == "new"
        assert spec.get_parameter("p").value == "old"

    def test_with_parameter_connected(self):
        """Test toggling has_connection."""
        spec = RequestSpec(parameters=[Parameter(id="p")])
        assert spec.with_parameter_connected("p", True).get_parameter("p").has_connection

    def test_to_dict_uses_camel_case(self):
        """Test the persisted field names."""
        spec = RequestSpec(
            method=HttpMethod.POST,
            url="https://api.test",
            extract_path="data.items",
            output_sockets=[OutputSocket(id="o", path="id", type=DataType.NUMBER)],
        )
        data = spec.to_dict()

        assert data["method"] == "POST"
        assert data["extractPath"] == "data.items"
        assert data["outputSockets"][0]["type"] == "number"

    def test_from_dict(self):
        """Test RequestSpec deserialization."""
        data = {
            "method": "put",
            "url": "https://api.test/items/1",
            "headers": [{"id": "h", "key": "Accept", "value": "application/json"}],
            "parameters": [{"id": "p", "key": "name", "value": "x", "hasConnection": True}],
            "expectedStatus": None,
        }
        spec = RequestSpec.from_dict(data)

        assert spec.method == HttpMethod.PUT
        assert spec.headers == [Header(id="h", key="Accept", value="application/json")]
        assert spec.get_parameter("p").has_connection
        assert spec.expected_status is None

    def test_from_dict_unknown_method_defaults_to_get(self):
        """Test that an unknown method does not fail loading."""
        assert RequestSpec.from_dict({"method": "TRACE"}).method == HttpMethod.GET


class TestNode:
    """Tests for Node dataclass."""

    def test_runtime_not_serialized(self):
        """Test that runtime state never reaches to_dict()."""
        node = Node(id="n", runtime=RuntimeState(status=RequestStatus.SUCCESS))
        data = node.to_dict()

        assert "runtime" not in data
        assert Node.from_dict(data).runtime.status == RequestStatus.IDLE

    def test_round_trip(self):
        """Test Node serialization round trip."""
        node = Node(
            id="n",
            position=Point(10, 20),
            size=Size(width=500, height=400),
            request=RequestSpec(method=HttpMethod.DELETE, url="https://api.test/1"),
        )
        assert Node.from_dict(node.to_dict()) == node

    def test_title(self):
        """Test the node title."""
        assert Node(id="n").title == "GET (no url)"


class TestConnection:
    """Tests for Connection dataclass."""

    def test_endpoints_and_touches(self):
        """Test connection identity helpers."""
        conn = Connection("c", "a", "out", "b", "in")

        assert conn.endpoints == ("a", "out", "b", "in")
        assert conn.touches("a")
        assert conn.touches("b")
        assert not conn.touches("z")

    def test_round_trip(self):
        """Test Connection serialization round trip."""
        conn = Connection("c", "a", "out", "b", "in")
        assert Connection.from_dict(conn.to_dict()) == conn
