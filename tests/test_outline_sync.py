"""Tests for outline_sync module."""

import pytest
from pydantic import ValidationError

from outlineflow.config import Settings
from outlineflow.layout import LayoutEngine
from outlineflow.models import Heading
from outlineflow.outline_sync import OutlineSync
from outlineflow.store import ShapeStore


@pytest.fixture
def sync(store, layout, settings):
    return OutlineSync(store, layout, settings)


def headings(*pairs):
    return [Heading(id=heading_id, text=text) for heading_id, text in pairs]


class TestReconcile:
    """Test OutlineSync.reconcile."""

    def test_creates_shapes(self, store, sync):
        result = sync.reconcile(headings(("h1", "Intro"), ("h2", "Body")))

        assert len(result.created) == 2
        first = store.find_by_heading("h1")
        second = store.find_by_heading("h2")
        assert first.text == "Intro"
        assert (first.x, first.y) == (50, 50)
        assert (second.x, second.y) == (200, 50)
        assert (first.width, first.height) == (120, 36)
        assert first.heading_index == 0
        assert second.heading_index == 1

    def test_grid_wraps(self, store, sync):
        sync.reconcile(headings(*[(f"h{i}", str(i)) for i in range(7)]))

        assert (store.find_by_heading("h5").x, store.find_by_heading("h5").y) == (50, 150)
        assert (store.find_by_heading("h6").x, store.find_by_heading("h6").y) == (200, 150)

    def test_idempotent(self, store, sync):
        """A second call with the same headings changes nothing."""
        items = headings(("h1", "Intro"), ("h2", "Body"))
        sync.reconcile(items)
        before = store.dump().to_json_dict()

        result = sync.reconcile(items)

        assert not result.changed
        assert store.dump().to_json_dict() == before

    def test_rename(self, store, sync):
        sync.reconcile(headings(("h1", "Intro")))
        shape = store.find_by_heading("h1")

        result = sync.reconcile(headings(("h1", "Introduction")))

        assert result.updated == [shape.id]
        assert shape.text == "Introduction"

    def test_moved_shape_keeps_position(self, store, sync):
        sync.reconcile(headings(("h1", "Intro")))
        shape = store.find_by_heading("h1")
        store.update_shape(shape.id, x=400, y=300)

        sync.reconcile(headings(("h1", "Intro"), ("h2", "Body")))

        assert (shape.x, shape.y) == (400, 300)

    def test_removes_stale(self, store, sync):
        sync.reconcile(headings(("h1", "Intro"), ("h2", "Body")))
        stale = store.find_by_heading("h1").id

        result = sync.reconcile(headings(("h2", "Body")))

        assert result.removed == [stale]
        assert stale not in store
        assert store.find_by_heading("h2").heading_index == 0

    def test_manual_shapes_untouched(self, store, sync):
        manual = store.add_shape(text="mine")

        sync.reconcile(headings(("h1", "Intro")))
        sync.reconcile([])

        assert store.get_shape(manual).text == "mine"
        assert len(store) == 1

    def test_legacy_adoption(self, store, sync):
        """Shapes saved without a heading id are matched by position."""
        legacy = store.add_shape(text="old", heading_index=0)

        result = sync.reconcile(headings(("h1", "Intro")))

        assert result.adopted == [legacy]
        assert result.created == []
        assert store.find_by_heading("h1").id == legacy
        assert store.get_shape(legacy).text == "Intro"

    def test_duplicate_heading_ids(self, store, sync):
        result = sync.reconcile(headings(("h1", "A"), ("h1", "B")))

        assert len(result.created) == 1
        assert store.find_by_heading("h1").text == "A"

    def test_accepts_dicts(self, store, sync):
        sync.reconcile([{"id": "h1", "text": "Intro", "level": 2}])
        assert store.find_by_heading("h1").text == "Intro"

    def test_invalid_level(self):
        with pytest.raises(ValidationError):
            Heading(id="h1", text="x", level=5)

    def test_removed_group_frees_children(self, store, layout, containment, sync):
        sync.reconcile(headings(("h1", "Group")))
        group = store.find_by_heading("h1")
        child = store.get_shape(store.add_shape(x=group.x + 10, y=group.y + 10, width=60, height=30))
        containment.group_shapes(group.id, child.id)
        layout.toggle_collapse(group.id)
        assert not child.visible

        sync.reconcile([])

        assert child.parent is None
        assert child.visible


class TestPlacement:
    """Test below-previous placement."""

    def test_below_previous(self):
        settings = Settings(_env_file=None, placement="below_previous")
        store = ShapeStore(settings)
        sync = OutlineSync(store, LayoutEngine(store, settings), settings)

        sync.reconcile(headings(("h1", "Intro"), ("h2", "Body")))

        first = store.find_by_heading("h1")
        second = store.find_by_heading("h2")
        assert second.x == first.x
        assert second.y == first.y + first.height + 20


class TestBridge:
    """Test editor scroll bridge lookups."""

    def test_shape_for_heading(self, store, sync):
        sync.reconcile(headings(("h1", "Intro")))
        assert sync.shape_for_heading("h1").text == "Intro"
        assert sync.shape_for_heading("missing") is None

    def test_heading_for_shape(self, store, sync):
        sync.reconcile(headings(("h1", "Intro")))
        shape = store.find_by_heading("h1")

        assert sync.heading_for_shape(shape.id) == "h1"
        assert sync.heading_for_shape(store.add_shape()) is None
        assert sync.heading_for_shape("missing") is None
