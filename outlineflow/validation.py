"""
Flowchart validation - Check the shape tree for structural issues.

The core operations keep these invariants on their own; the checker exists
for loaded documents, tests and the HTTP `validate` endpoint.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .store import ShapeStore


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Broken invariant
    WARNING = "warning"  # Legal but probably unintended
    INFO = "info"


@dataclass
class ValidationIssue:
    """A single validation issue found in a flowchart."""
    severity: IssueSeverity
    message: str
    shape_id: str | None = None
    connection_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.shape_id:
            result["shape_id"] = self.shape_id
        if self.connection_id:
            result["connection_id"] = self.connection_id
        return result


def validate_flowchart(store: "ShapeStore") -> list[ValidationIssue]:
    """
    Validate the shapes and connections of a store.

    Checks for:
    - Parent/children references to missing shapes - ERROR
    - Parent/children links that disagree - ERROR
    - Cycles in the parent chain - ERROR
    - A heading linked to more than one shape - ERROR
    - Connections with a missing endpoint - ERROR
    - Self-connections - WARNING
    - Empty flowchart - INFO

    Args:
        store: The store to validate

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []
    shapes = {s.id: s for s in store.get_shapes()}

    if not shapes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Flowchart has no shapes"
        ))

    for shape in shapes.values():
        if shape.parent is not None:
            parent = shapes.get(shape.parent)
            if parent is None:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Parent does not exist: {shape.parent}",
                    shape_id=shape.id
                ))
            elif shape.id not in parent.children:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Parent {parent.id} does not list this shape as a child",
                    shape_id=shape.id
                ))

        if len(set(shape.children)) != len(shape.children):
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message="Duplicate child entries",
                shape_id=shape.id
            ))
        for child_id in shape.children:
            child = shapes.get(child_id)
            if child is None:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Child does not exist: {child_id}",
                    shape_id=shape.id
                ))
            elif child.parent != shape.id:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Child {child_id} names {child.parent} as its parent",
                    shape_id=shape.id
                ))

    # Cycles: walk each parent chain
    for shape in shapes.values():
        seen = {shape.id}
        cursor = shape.parent
        while cursor is not None and cursor in shapes:
            if cursor == shape.id:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message="Shape is its own ancestor",
                    shape_id=shape.id
                ))
                break
            if cursor in seen:
                break
            seen.add(cursor)
            cursor = shapes[cursor].parent

    heading_owners: dict[str, str] = {}
    for shape in shapes.values():
        if shape.heading_id is None:
            continue
        if shape.heading_id in heading_owners:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Heading {shape.heading_id} is also linked to {heading_owners[shape.heading_id]}",
                shape_id=shape.id
            ))
        else:
            heading_owners[shape.heading_id] = shape.id

    for connection in store.get_connections():
        for endpoint in (connection.from_shape, connection.to_shape):
            if endpoint not in shapes:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Connection references non-existent shape: {endpoint}",
                    connection_id=connection.id
                ))
        if connection.from_shape == connection.to_shape:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Self-connection (shape points to itself)",
                connection_id=connection.id,
                shape_id=connection.from_shape
            ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    errors = len([i for i in issues if i.severity == IssueSeverity.ERROR])
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": errors == 0
    }
