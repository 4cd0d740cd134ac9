"""
Tests for apiflow.core.graph_store module.

Tests node and connection management, change notification and persistence.
"""

import json

import pytest

from apiflow.core.graph_store import GraphStore
from apiflow.core.models import Connection, Node, Point, RequestSpec, RuntimeState, Size
from apiflow.core.types import MutationResult, RequestStatus


def connect(store: GraphStore, conn_id: str = "c2", source: str = "source",
            target: str = "target", socket: str = "in") -> MutationResult:
    return store.add_connection(Connection(conn_id, source, "out", target, socket))


class TestNodeManagement:
    """Tests for adding, updating and removing nodes."""

    def test_add_and_get(self, store, make_source):
        """Test adding a node."""
        assert store.add_node(make_source()) == MutationResult.OK
        assert store.get_node("source") is not None
        assert store.node_count == 1
        assert store.is_dirty

    def test_add_duplicate_id(self, store, make_source):
        """Test that node ids are unique."""
        store.add_node(make_source())
        assert store.add_node(make_source()) == MutationResult.DUPLICATE
        assert store.node_count == 1

    def test_get_nodes_keeps_insertion_order(self, store):
        """Test node ordering."""
        for node_id in ("b", "a", "c"):
            store.add_node(Node(id=node_id))
        assert [n.id for n in store.get_nodes()] == ["b", "a", "c"]

    def test_update_is_shallow_merge(self, store, make_source):
        """Test that update_node only changes the patched keys."""
        store.add_node(make_source())
        before = store.get_node("source")

        assert store.update_node("source", {"position": Point(5, 6)}) == MutationResult.OK
        after = store.get_node("source")

        assert after.position == Point(5, 6)
        assert after.request == before.request
        assert after.size == before.size

    def test_update_unknown_node(self, store):
        """Test updating a node that does not exist."""
        assert store.update_node("ghost", {"position": Point()}) == MutationResult.NOT_FOUND

    def test_update_rejects_unknown_fields(self, store, make_source):
        """Test that only node attributes can be patched."""
        store.add_node(make_source())
        assert store.update_node("source", {"id": "other"}) == MutationResult.INVALID
        assert store.update_node("source", {"color": "red"}) == MutationResult.INVALID
        assert store.get_node("source").id == "source"

    def test_runtime_update_notifies_without_dirtying(self, store, make_source):
        """Test that execution results do not count as unsaved edits."""
        store.add_node(make_source())
        store.mark_clean()
        calls = []
        store.on_change(lambda: calls.append(1))

        store.update_node("source", {"runtime": RuntimeState(status=RequestStatus.LOADING)})

        assert calls == [1]
        assert not store.is_dirty

    def test_remove_node_removes_connections(self, linked_store):
        """Test that removing a node detaches every touching connection."""
        assert linked_store.remove_node("source") == MutationResult.OK
        assert linked_store.get_connections() == []
        assert not linked_store.get_node("target").request.get_parameter("in").has_connection

    def test_remove_unknown_node(self, store):
        """Test removing a node that does not exist."""
        assert store.remove_node("ghost") == MutationResult.NOT_FOUND


class TestConnectionManagement:
    """Tests for connection invariants."""

    def test_add_marks_parameter_connected(self, linked_store):
        """Test that a new connection flags its target parameter."""
        assert linked_store.connection_count == 1
        assert linked_store.get_node("target").request.get_parameter("in").has_connection

    def test_unknown_node_or_socket(self, store, make_source, make_target):
        """Test connections to missing endpoints."""
        store.add_node(make_source())
        store.add_node(make_target())

        assert connect(store, target="ghost") == MutationResult.NOT_FOUND
        assert connect(store, socket="nope") == MutationResult.NOT_FOUND
        assert store.add_connection(Connection("c", "source", "nope", "target", "in")) == MutationResult.NOT_FOUND
        assert store.connection_count == 0

    def test_duplicate_endpoints(self, linked_store):
        """Test that the same endpoints cannot be connected twice."""
        assert connect(linked_store, conn_id="other") == MutationResult.DUPLICATE
        assert linked_store.connection_count == 1

    def test_duplicate_id(self, linked_store, make_target):
        """Test that connection ids are unique."""
        linked_store.add_node(make_target("target2"))
        assert connect(linked_store, conn_id="conn-1", target="target2") == MutationResult.DUPLICATE

    def test_fan_in_rejected_by_default(self, linked_store, make_source):
        """Test that a parameter accepts one incoming connection."""
        linked_store.add_node(make_source("source2"))
        assert connect(linked_store, source="source2") == MutationResult.INVALID
        assert linked_store.connection_count == 1

    def test_fan_in_allowed(self, make_source, make_target):
        """Test the allow_fan_in option."""
        store = GraphStore(allow_fan_in=True)
        store.add_node(make_source())
        store.add_node(make_source("source2"))
        store.add_node(make_target())

        assert connect(store, conn_id="a") == MutationResult.OK
        assert connect(store, conn_id="b", source="source2") == MutationResult.OK

        # The parameter stays connected until its last feeder is removed
        store.remove_connection("a")
        assert store.get_node("target").request.get_parameter("in").has_connection
        store.remove_connection("b")
        assert not store.get_node("target").request.get_parameter("in").has_connection

    def test_fan_out_allowed(self, linked_store, make_target):
        """Test that one output socket may feed several parameters."""
        linked_store.add_node(make_target("target2"))
        assert connect(linked_store, target="target2") == MutationResult.OK
        assert len(linked_store.outgoing_connections("source")) == 2

    def test_disabled_source_socket(self, store, make_source, make_target):
        """Test that disabled outputs cannot be connected."""
        source = make_source()
        source.request.output_sockets[0].enabled = False
        store.add_node(source)
        store.add_node(make_target())

        assert connect(store) == MutationResult.INVALID

    def test_remove_connection(self, linked_store):
        """Test removing a connection clears has_connection."""
        assert linked_store.remove_connection("conn-1") == MutationResult.OK
        assert linked_store.connection_count == 0
        assert not linked_store.get_node("target").request.get_parameter("in").has_connection

    def test_remove_unknown_connection(self, store):
        """Test removing a connection that does not exist."""
        assert store.remove_connection("ghost") == MutationResult.NOT_FOUND

    def test_incoming_and_outgoing(self, linked_store):
        """Test connection queries."""
        assert [c.id for c in linked_store.outgoing_connections("source")] == ["conn-1"]
        assert [c.id for c in linked_store.incoming_connections("target")] == ["conn-1"]
        assert linked_store.incoming_connections("target", "other") == []
        assert linked_store.incoming_connections("source") == []


class TestChangeNotification:
    """Tests for on_change callbacks."""

    def test_callbacks_fire_on_mutation(self, store, make_source):
        """Test that mutations notify listeners."""
        calls = []
        store.on_change(lambda: calls.append(1))
        store.add_node(make_source())
        store.update_node("source", {"size": Size(width=500)})
        store.remove_node("source")
        assert len(calls) == 3

    def test_failing_callback_is_contained(self, store, make_source):
        """Test that a raising callback does not break the store."""
        calls = []

        def bad_callback():
            raise RuntimeError("boom")

        store.on_change(bad_callback)
        store.on_change(lambda: calls.append(1))

        assert store.add_node(make_source()) == MutationResult.OK
        assert calls == [1]

    def test_clear(self, linked_store):
        """Test clearing the graph."""
        linked_store.clear()
        assert linked_store.node_count == 0
        assert linked_store.connection_count == 0
        assert linked_store.file_path is None


class TestPersistence:
    """Tests for dict/JSON/file round trips."""

    def test_to_dict(self, linked_store):
        """Test the serialized layout."""
        data = linked_store.to_dict()

        assert data["version"] == "1.0"
        assert [n["id"] for n in data["nodes"]] == ["source", "target"]
        assert data["connections"][0]["from_node"] == "source"

    def test_round_trip_restores_graph(self, linked_store):
        """Test that connections and has_connection survive a round trip."""
        restored = GraphStore.from_json(linked_store.to_json())

        assert restored.node_count == 2
        assert restored.get_connection("conn-1") is not None
        assert restored.get_node("target").request.get_parameter("in").has_connection
        assert not restored.is_dirty

    def test_stale_connection_skipped(self, linked_store):
        """Test that connections pointing at missing sockets are dropped on load."""
        data = linked_store.to_dict()
        data["connections"][0]["to_socket"] = "gone"

        restored = GraphStore.from_dict(data)

        assert restored.connection_count == 0
        assert not restored.get_node("target").request.get_parameter("in").has_connection

    def test_save_and_load(self, linked_store, temp_dir):
        """Test saving to and loading from a file."""
        path = str(temp_dir / "graph.apiflow")
        assert linked_store.save(path) == path
        assert not linked_store.is_dirty
        assert linked_store.file_path == path

        loaded = GraphStore.load(path)
        assert loaded.file_path == path
        assert json.loads((temp_dir / "graph.apiflow").read_text())["version"] == "1.0"
        assert loaded.to_dict() == linked_store.to_dict()

    def test_save_without_path(self, store):
        """Test that saving needs a path."""
        with pytest.raises(ValueError):
            store.save()

    def test_runtime_is_not_persisted(self, linked_store):
        """Test that runtime state stays in memory."""
        linked_store.update_node("source", {"runtime": RuntimeState(status=RequestStatus.ERROR)})
        restored = GraphStore.from_dict(linked_store.to_dict())
        assert restored.get_node("source").runtime.status == RequestStatus.IDLE

    def test_node_without_request_loads(self):
        """Test loading a minimal node."""
        restored = GraphStore.from_dict({"nodes": [{"id": "bare"}]})
        assert restored.get_node("bare").request == RequestSpec()
