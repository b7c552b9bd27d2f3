"""
Containment resolution - turns drops into grouping decisions.

A shape belongs to a group when its center lies inside the group's
rectangle. Dropping a shape picks the innermost visible group under it,
and dragging a child out of its parent ungroups it.
"""

from enum import Enum
from typing import Optional

from .geometry import HasBounds, Rect, center_inside
from .layout import LayoutEngine
from .logging import get_logger
from .models import Shape
from .store import ShapeStore

logger = get_logger(__name__)


class DropOutcome(str, Enum):
    """What a drop did to the dropped shape's membership."""
    GROUPED = "grouped"
    UNGROUPED = "ungrouped"
    UNCHANGED = "unchanged"


class ContainmentResolver:
    """Grouping rules on top of the store, with layout follow-up."""

    def __init__(self, store: ShapeStore, layout: LayoutEngine):
        self._store = store
        self._layout = layout

    @staticmethod
    def check_collision(inner: HasBounds, outer: HasBounds) -> bool:
        """True if the center of `inner` lies inside `outer`."""
        return center_inside(inner, outer)

    def is_descendant(self, ancestor_id: str, candidate_id: str) -> bool:
        """True if `candidate_id` appears anywhere in the subtree below `ancestor_id`."""
        return any(d.id == candidate_id for d in self._store.iter_descendants(ancestor_id))

    def group_shapes(self, parent_id: str, child_id: str) -> bool:
        """
        Place a shape inside a group.

        The child leaves any previous parent first. The parent is refit around
        its children, its siblings are pushed aside by the growth and its
        ancestors are refit. A child joining a collapsed or hidden group is
        hidden.

        Returns:
            False (no mutation) for self-grouping, unknown ids, or a link that
            would create a cycle
        """
        if parent_id == child_id:
            return False
        parent = self._store.get_shape(parent_id)
        child = self._store.get_shape(child_id)
        if parent is None or child is None:
            return False
        if self.is_descendant(child_id, parent_id):
            logger.warning("Refusing to group %s under its own descendant %s", child_id, parent_id)
            return False

        if child.parent != parent_id:
            if child.parent is not None:
                self.ungroup_shape(child_id)
            child.parent = parent_id
        if child_id not in parent.children:
            parent.children.append(child_id)

        before = Rect.of(parent)
        self._layout.update_parent_size(parent_id)
        self._layout.refresh_visibility(child_id)
        self._layout.settle(parent_id, before)

        logger.debug("Grouped %s under %s", child_id, parent_id)
        return True

    def ungroup_shape(self, child_id: str) -> bool:
        """
        Make a shape a root again.

        Its former parent is refit and the shape (with its subtree) becomes
        visible according to its own collapsed flags.

        Returns:
            False if the shape does not exist or has no parent
        """
        child = self._store.get_shape(child_id)
        if child is None or child.parent is None:
            return False

        parent = self._store.get_shape(child.parent)
        child.parent = None
        if parent is not None:
            parent.children = [c for c in parent.children if c != child_id]

        self._layout.refresh_visibility(child_id)
        if parent is not None:
            self._layout.refit_from(parent.id)

        logger.debug("Ungrouped %s", child_id)
        return True

    def find_drop_target(self, shape_id: str) -> Optional[Shape]:
        """
        The group a shape would join if dropped where it is now.

        Candidates are visible shapes (other than the shape and its subtree)
        that contain the shape's center. The smallest candidate wins, which
        is the innermost group when groups nest; among equal areas the one
        added last wins.
        """
        shape = self._store.get_shape(shape_id)
        if shape is None:
            return None

        excluded = {shape_id} | {d.id for d in self._store.iter_descendants(shape_id)}
        best: Optional[Shape] = None
        best_area = 0.0

        for other in self._store.get_shapes():
            if other.id in excluded or not other.visible:
                continue
            if not self.check_collision(shape, other):
                continue
            area = other.width * other.height
            if best is None or area <= best_area:
                best, best_area = other, area

        return best

    def handle_drop(self, shape_id: str) -> DropOutcome:
        """
        Resolve membership after a shape was released.

        Joins the innermost group under the shape, or leaves its parent if
        the shape's center is now outside it.
        """
        shape = self._store.get_shape(shape_id)
        if shape is None:
            return DropOutcome.UNCHANGED

        target = self.find_drop_target(shape_id)
        if target is not None:
            previous = shape.parent
            if not self.group_shapes(target.id, shape_id):
                return DropOutcome.UNCHANGED
            return DropOutcome.GROUPED if previous != target.id else DropOutcome.UNCHANGED

        parent = self._store.get_shape(shape.parent)
        if parent is not None and not self.check_collision(shape, parent):
            self.ungroup_shape(shape_id)
            return DropOutcome.UNGROUPED

        return DropOutcome.UNCHANGED
