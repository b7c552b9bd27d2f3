"""Tests for store module."""

import pytest
from pydantic import ValidationError

from outlineflow.models import FlowchartDocument
from outlineflow.store import ShapeStore
from outlineflow.validation import IssueSeverity, validate_flowchart


class TestAddShape:
    """Test ShapeStore.add_shape."""

    def test_defaults(self, store):
        """Omitted fields take the palette and manual-shape size."""
        shape_id = store.add_shape(text="Start")
        shape = store.get_shape(shape_id)

        assert shape_id.startswith("shape-")
        assert shape.text == "Start"
        assert (shape.x, shape.y) == (50, 50)
        assert (shape.width, shape.height) == (120, 60)
        assert shape.background_color == "#ffffff"
        assert shape.border_color == "#cbd5e1"
        assert shape.color == "#334155"
        assert shape.parent is None
        assert shape.children == []
        assert shape.visible

    def test_explicit_id(self, store):
        assert store.add_shape(id="a") == "a"
        assert "a" in store

    def test_duplicate_id_rejected(self, store):
        """Re-using an id fails without touching the existing shape."""
        store.add_shape(id="a", text="first")

        assert store.add_shape(id="a", text="second") is None
        assert len(store) == 1
        assert store.get_shape("a").text == "first"

    def test_group_fields_ignored(self, store):
        store.add_shape(id="p")
        shape_id = store.add_shape(parent="p", children=["x"])

        shape = store.get_shape(shape_id)
        assert shape.parent is None
        assert shape.children == []

    def test_wire_aliases(self, store):
        shape_id = store.add_shape({"backgroundColor": "#000000", "headingId": "h1"})

        shape = store.get_shape(shape_id)
        assert shape.background_color == "#000000"
        assert shape.heading_id == "h1"

    def test_size_clamped(self, store):
        shape = store.get_shape(store.add_shape(width=10, height=-5))
        assert (shape.width, shape.height) == (50, 30)

    def test_insertion_order(self, store):
        ids = [store.add_shape(text=str(i)) for i in range(5)]
        assert [s.id for s in store.get_shapes()] == ids


class TestUpdateShape:
    """Test ShapeStore.update_shape."""

    def test_merge(self, store):
        shape_id = store.add_shape(text="old", x=10)

        assert store.update_shape(shape_id, text="new")
        shape = store.get_shape(shape_id)
        assert shape.text == "new"
        assert shape.x == 10

    def test_patch_dict_with_aliases(self, store):
        shape_id = store.add_shape()

        assert store.update_shape(shape_id, {"borderColor": "#ff0000", "width": 200})
        shape = store.get_shape(shape_id)
        assert shape.border_color == "#ff0000"
        assert shape.width == 200

    def test_unknown_shape(self, store):
        assert not store.update_shape("missing", text="x")

    def test_structural_fields_ignored(self, store):
        """Grouping cannot be changed through a patch."""
        parent_id = store.add_shape()
        shape_id = store.add_shape()

        assert store.update_shape(shape_id, parent=parent_id, children=[parent_id], id="other")
        shape = store.get_shape(shape_id)
        assert shape.id == shape_id
        assert shape.parent is None
        assert shape.children == []
        assert store.get_shape(parent_id).children == []

    def test_heading_index_follows_update(self, store):
        shape_id = store.add_shape(heading_id="h1")
        store.update_shape(shape_id, heading_id="h2")

        assert store.find_by_heading("h1") is None
        assert store.find_by_heading("h2").id == shape_id

    def test_heading_conflict(self, store):
        store.add_shape(heading_id="h1")
        other = store.add_shape()

        assert not store.update_shape(other, heading_id="h1", text="changed")
        assert store.get_shape(other).text == ""

    def test_resize_clamped(self, store):
        shape_id = store.add_shape()
        store.update_shape(shape_id, width=1, height=1)

        shape = store.get_shape(shape_id)
        assert (shape.width, shape.height) == (50, 30)


class TestRemoveShape:
    """Test ShapeStore.remove_shape."""

    def test_remove(self, store):
        shape_id = store.add_shape()
        assert store.remove_shape(shape_id)
        assert store.get_shape(shape_id) is None

    def test_remove_unknown(self, store):
        assert not store.remove_shape("missing")

    def test_cascades_connections(self, store):
        a = store.add_shape()
        b = store.add_shape()
        c = store.add_shape()
        store.add_connection(from_shape=a, to_shape=b)
        store.add_connection(from_shape=b, to_shape=a)
        keep = store.add_connection(from_shape=b, to_shape=c)

        store.remove_shape(a)

        assert [conn.id for conn in store.get_connections()] == [keep]
        assert store.get_connections_for_shape(b)[0].id == keep

    def test_orphans_children(self, store, containment, box):
        """Children of a removed group become roots, not deleted."""
        parent = box(0, 0, 400, 300)
        child = box(50, 80, 100, 40)
        containment.group_shapes(parent.id, child.id)

        store.remove_shape(parent.id)

        assert child.id in store
        assert child.parent is None

    def test_detaches_from_parent(self, store, containment, box):
        parent = box(0, 0, 400, 300)
        child = box(50, 80, 100, 40)
        containment.group_shapes(parent.id, child.id)

        store.remove_shape(child.id)

        assert parent.children == []

    def test_frees_heading(self, store):
        shape_id = store.add_shape(heading_id="h1")
        store.remove_shape(shape_id)

        assert store.find_by_heading("h1") is None
        assert store.add_shape(heading_id="h1") is not None


class TestConnections:
    """Test connection operations."""

    def test_defaults(self, store):
        a = store.add_shape()
        b = store.add_shape()

        connection = store.get_connection(store.add_connection(from_shape=a, to_shape=b))

        assert connection.id.startswith("conn-")
        assert connection.from_point == "bottom"
        assert connection.to_point == "top"
        assert connection.style.color == "#94a3b8"
        assert connection.style.type == "solid"
        assert connection.style.arrow == "end"

    def test_wire_names(self, store):
        a = store.add_shape()
        b = store.add_shape()

        conn_id = store.add_connection({"from": a, "to": b, "fromPoint": "right", "toPoint": "left"})

        connection = store.get_connection(conn_id)
        assert (connection.from_shape, connection.to_shape) == (a, b)
        assert (connection.from_point, connection.to_point) == ("right", "left")

    def test_missing_endpoint(self, store):
        a = store.add_shape()

        assert store.add_connection(from_shape=a, to_shape="missing") is None
        assert store.get_connections() == []

    def test_parallel_connections_allowed(self, store):
        a = store.add_shape()
        b = store.add_shape()

        first = store.add_connection(from_shape=a, to_shape=b)
        second = store.add_connection(from_shape=a, to_shape=b)

        assert first != second
        assert len(store.get_connections()) == 2

    def test_style_merge(self, store):
        """A style patch is merged key-wise."""
        a = store.add_shape()
        b = store.add_shape()
        conn_id = store.add_connection(from_shape=a, to_shape=b, style={"type": "dashed"})

        assert store.update_connection(conn_id, style={"label": "yes"})

        style = store.get_connection(conn_id).style
        assert style.type == "dashed"
        assert style.label == "yes"

    def test_unknown_line_type_rejected(self, store):
        a = store.add_shape()
        b = store.add_shape()

        with pytest.raises(ValidationError):
            store.add_connection(from_shape=a, to_shape=b, style={"type": "zigzag"})

        assert store.get_connections() == []

    def test_unknown_arrow_leaves_connection_untouched(self, store):
        """A style patch with an unknown arrow fails before anything changes."""
        a = store.add_shape()
        b = store.add_shape()
        conn_id = store.add_connection(from_shape=a, to_shape=b)

        with pytest.raises(ValidationError):
            store.update_connection(conn_id, style={"type": "dashed", "arrow": "sideways"})

        style = store.get_connection(conn_id).style
        assert style.type == "solid"
        assert style.arrow == "end"

    def test_update_anchor(self, store):
        a = store.add_shape()
        b = store.add_shape()
        conn_id = store.add_connection(from_shape=a, to_shape=b)

        store.update_connection(conn_id, {"fromPoint": "left"})

        assert store.get_connection(conn_id).from_point == "left"

    def test_update_to_missing_endpoint(self, store):
        a = store.add_shape()
        b = store.add_shape()
        conn_id = store.add_connection(from_shape=a, to_shape=b)

        assert not store.update_connection(conn_id, to_shape="missing")
        assert store.get_connection(conn_id).to_shape == b

    def test_update_unknown(self, store):
        assert not store.update_connection("missing", style={"label": "x"})

    def test_remove(self, store):
        a = store.add_shape()
        b = store.add_shape()
        conn_id = store.add_connection(from_shape=a, to_shape=b)

        assert store.remove_connection(conn_id)
        assert not store.remove_connection(conn_id)
        assert store.get_connections_for_shape(a) == []


class TestLoad:
    """Test loading documents with broken invariants."""

    def _document(self):
        return FlowchartDocument.from_json_dict({
            "shapes": [
                ["P", {"text": "parent", "children": ["C", "ghost", "C"]}],
                ["C", {"text": "child"}],
                ["D", {"text": "one-sided", "parent": "P"}],
                ["X", {"text": "dangling", "parent": "nope"}],
                ["M", {"parent": "N", "children": ["N"]}],
                ["N", {"parent": "M", "children": ["M"]}],
            ],
            "connections": [
                {"id": "ok", "from": "P", "to": "C"},
                {"id": "bad", "from": "ghost", "to": "C"},
            ],
            "zoomLevel": 1.5,
        })

    def test_links_repaired(self, store):
        repairs = store.load(self._document())

        assert repairs > 0
        assert store.get_shape("P").children == ["C", "D"]
        assert store.get_shape("C").parent == "P"
        assert store.get_shape("D").parent == "P"
        assert store.get_shape("X").parent is None

    def test_cycle_cut(self, store):
        store.load(self._document())

        m = store.get_shape("M")
        n = store.get_shape("N")
        assert m.parent is None
        assert m.children == ["N"]
        assert n.parent == "M"
        assert n.children == []

    def test_dangling_connection_dropped(self, store):
        store.load(self._document())
        assert [c.id for c in store.get_connections()] == ["ok"]

    def test_result_validates(self, store):
        store.load(self._document())
        errors = [i for i in validate_flowchart(store) if i.severity == IssueSeverity.ERROR]
        assert errors == []

    def test_load_replaces_contents(self, store):
        store.add_shape(id="old")
        store.load(self._document())
        assert "old" not in store

    def test_dump_is_detached(self, store):
        shape_id = store.add_shape(text="a")
        document = store.dump()

        document.shapes[0].text = "changed"

        assert store.get_shape(shape_id).text == "a"

    def test_independent_instances(self, settings):
        first = ShapeStore(settings)
        second = ShapeStore(settings)
        first.add_shape(id="a")
        assert "a" not in second
