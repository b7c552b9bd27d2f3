"""Tests for validation module."""

from outlineflow.validation import IssueSeverity, validate_flowchart, validation_summary


class TestValidateFlowchart:
    """Test the structural checker."""

    def test_empty(self, store):
        issues = validate_flowchart(store)

        assert len(issues) == 1
        assert issues[0].severity == IssueSeverity.INFO

    def test_consistent_tree(self, store, containment, box):
        parent = box(0, 0, 400, 300)
        child = box(100, 100, 100, 40)
        containment.group_shapes(parent.id, child.id)

        assert validate_flowchart(store) == []

    def test_one_sided_parent(self, store, box):
        parent = box(0, 0, 400, 300)
        child = box(100, 100, 100, 40)
        child.parent = parent.id

        issues = validate_flowchart(store)

        assert any(i.severity == IssueSeverity.ERROR and i.shape_id == child.id for i in issues)

    def test_missing_child(self, store, box):
        parent = box(0, 0, 400, 300)
        parent.children.append("ghost")

        messages = [i.message for i in validate_flowchart(store)]

        assert "Child does not exist: ghost" in messages

    def test_cycle(self, store, box):
        a = box(0, 0, 100, 40)
        b = box(200, 0, 100, 40)
        a.parent, b.parent = b.id, a.id
        a.children, b.children = [b.id], [a.id]

        issues = validate_flowchart(store)

        assert any(i.message == "Shape is its own ancestor" for i in issues)

    def test_duplicate_heading(self, store, box):
        first = box(0, 0, 100, 40, heading_id="h1")
        second = box(200, 0, 100, 40)
        second.heading_id = first.heading_id

        issues = validate_flowchart(store)

        assert [i.shape_id for i in issues if i.severity == IssueSeverity.ERROR] == [second.id]

    def test_self_connection(self, store, box):
        shape = box(0, 0, 100, 40)
        store.add_connection(from_shape=shape.id, to_shape=shape.id)

        issues = validate_flowchart(store)

        assert [i.severity for i in issues] == [IssueSeverity.WARNING]
        assert issues[0].to_dict()["type"] == "warning"


class TestValidationSummary:
    """Test issue counting."""

    def test_summary(self, store, box):
        a = box(0, 0, 100, 40)
        a.parent = "ghost"
        store.add_connection(from_shape=a.id, to_shape=a.id)

        summary = validation_summary(validate_flowchart(store))

        assert summary["errors"] == 1
        assert summary["warnings"] == 1
        assert summary["total"] == 2
        assert not summary["valid"]
