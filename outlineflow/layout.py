"""
Layout engine for grouped shapes.

Handles:
- Fitting a group around its children (padding plus a header band)
- Collapse/expand with remembered sizes per state
- Visibility propagation from collapsed ancestors
- Shifting siblings out of the way when a shape grows
- Grid placement for heading-driven shapes
"""

from typing import Optional

from .config import Settings, load_settings
from .geometry import Rect, bounding_box
from .logging import get_logger
from .models import Shape, Size
from .store import ShapeStore

logger = get_logger(__name__)

# Canvas extent defaults
MIN_CANVAS_SIZE = 2000
CANVAS_MARGIN = 200


class LayoutEngine:
    """Size, position and visibility rules for the shape tree."""

    def __init__(self, store: ShapeStore, settings: Optional[Settings] = None):
        self._store = store
        self._settings = settings or load_settings()

    # --- Group sizing ---

    def update_parent_size(self, shape_id: str) -> bool:
        """
        Fit a group around its children.

        Expanded groups grow to cover the children's bounding box plus padding
        on every side and the header band above. Auto-fit only grows: the
        group's current rectangle is kept inside the result, so a group never
        shrinks or slides when a child leaves, and the size never drops below a
        recorded expanded size. Collapsed groups take their collapsed size.

        Returns:
            True if the shape's geometry changed
        """
        shape = self._store.get_shape(shape_id)
        if shape is None or not shape.children:
            return False

        before = Rect.of(shape)

        if shape.collapsed:
            size = shape.collapsed_size or self._default_collapsed_size()
            shape.width, shape.height = size.width, size.height
            return Rect.of(shape) != before

        children = [c for c in (self._store.get_shape(cid) for cid in shape.children) if c is not None]
        box = bounding_box(children)
        if box is None:
            return False

        pad = self._settings.group_padding
        box = box.inflate(pad, pad + self._settings.group_header_height, pad, pad)

        x = min(before.x, box.x)
        y = min(before.y, box.y)
        width = max(before.right, box.right) - x
        height = max(before.bottom, box.bottom) - y
        if shape.expanded_size is not None:
            width = max(width, shape.expanded_size.width)
            height = max(height, shape.expanded_size.height)

        shape.x, shape.y = x, y
        shape.width, shape.height = width, height
        shape.expanded_size = Size(width=width, height=height)
        return Rect.of(shape) != before

    def refit_from(self, group_id: Optional[str], displace: bool = True):
        """
        Refit a group and then each of its ancestors, innermost first.

        Args:
            group_id: First group to refit (None is a no-op)
            displace: Shift siblings of every group that grew
        """
        visited: set[str] = set()
        while group_id is not None and group_id not in visited:
            visited.add(group_id)
            group = self._store.get_shape(group_id)
            if group is None:
                return
            before = Rect.of(group)
            if self.update_parent_size(group_id) and displace:
                self._displace_for_growth(group, before)
            group_id = group.parent

    def refit_ancestors(self, shape_id: str, displace: bool = True):
        """Refit every group above a shape."""
        shape = self._store.get_shape(shape_id)
        if shape is not None:
            self.refit_from(shape.parent, displace=displace)

    def settle(self, group_id: str, before: Rect):
        """
        Propagate a group resize that already happened.

        Shifts the group's siblings by the growth since `before`, then refits
        the ancestors.
        """
        group = self._store.get_shape(group_id)
        if group is None:
            return
        self._displace_for_growth(group, before)
        self.refit_from(group.parent)

    def _displace_for_growth(self, shape: Shape, before: Rect):
        delta_x = shape.width - before.width
        delta_y = shape.height - before.height
        if delta_x or delta_y:
            self.adjust_layout(shape.id, delta_x, delta_y, before=before)

    def _default_collapsed_size(self) -> Size:
        return Size(width=self._settings.collapsed_width, height=self._settings.collapsed_height)

    # --- Collapse ---

    def toggle_collapse(self, shape_id: str) -> bool:
        """
        Collapse or expand a group.

        The size of the state being left is remembered, so a collapse/expand
        round trip restores the original size. Shapes below or to the right
        are shifted vertically by the height change.

        Returns:
            False if the shape does not exist or has no children
        """
        shape = self._store.get_shape(shape_id)
        if shape is None or not shape.children:
            return False

        before = Rect.of(shape)

        if not shape.collapsed:
            shape.expanded_size = Size(width=before.width, height=before.height)
            shape.collapsed = True
            size = shape.collapsed_size or self._default_collapsed_size()
            shape.width, shape.height = size.width, size.height
            self.set_children_visibility(shape_id, False)
        else:
            shape.collapsed_size = Size(width=before.width, height=before.height)
            shape.collapsed = False
            if shape.expanded_size is not None:
                shape.width, shape.height = shape.expanded_size.width, shape.expanded_size.height
            else:
                self.update_parent_size(shape_id)
            self.set_children_visibility(shape_id, shape.visible)

        delta_y = shape.height - before.height
        if delta_y:
            self.adjust_layout(shape_id, 0, delta_y, before=before)
        self.refit_ancestors(shape_id)

        logger.debug("Shape %s %s", shape_id, "collapsed" if shape.collapsed else "expanded")
        return True

    # --- Visibility ---

    def set_children_visibility(self, shape_id: str, visible: bool):
        """
        Show or hide the subtree below a shape.

        Hiding hides every descendant. Revealing stops at collapsed children:
        they become visible but their own descendants stay hidden.
        """
        shape = self._store.get_shape(shape_id)
        if shape is None:
            return
        for child_id in shape.children:
            child = self._store.get_shape(child_id)
            if child is None:
                continue
            child.visible = visible
            self.set_children_visibility(child_id, visible and not child.collapsed)

    def refresh_visibility(self, shape_id: str):
        """Recompute one shape's visibility from its parent, then its subtree."""
        shape = self._store.get_shape(shape_id)
        if shape is None:
            return
        parent = self._store.get_shape(shape.parent)
        shape.visible = parent is None or (parent.visible and not parent.collapsed)
        self.set_children_visibility(shape_id, shape.visible and not shape.collapsed)

    def recompute_visibility(self):
        """Recompute visibility for the whole tree (after loading)."""
        for shape in self._store.get_shapes():
            if shape.parent is None:
                shape.visible = True
                self.set_children_visibility(shape.id, not shape.collapsed)

    # --- Displacement ---

    def move_shape(self, shape_id: str, delta_x: float, delta_y: float):
        """Translate a shape together with its whole subtree."""
        shape = self._store.get_shape(shape_id)
        if shape is None:
            return
        shape.x += delta_x
        shape.y += delta_y
        for descendant in self._store.iter_descendants(shape_id):
            descendant.x += delta_x
            descendant.y += delta_y

    def adjust_layout(
        self,
        source_id: str,
        delta_x: float,
        delta_y: float,
        before: Optional[Rect] = None,
    ) -> list[str]:
        """
        Shift shapes out of the way of a shape that changed size.

        Only siblings are candidates (roots when the source is a root). A
        candidate starting at or beyond the source's right edge moves by
        `delta_x`; one starting at or beyond its bottom edge moves by
        `delta_y`. Candidates move together with their subtree.

        Args:
            source_id: The shape that changed size
            delta_x: Horizontal size change
            delta_y: Vertical size change
            before: Source geometry before the change (defaults to current)

        Returns:
            IDs of the shapes that moved
        """
        source = self._store.get_shape(source_id)
        if source is None:
            return []

        edges = before or Rect.of(source)
        descendants = {d.id for d in self._store.iter_descendants(source_id)}
        moved: list[str] = []

        for shape in self._store.get_shapes():
            if shape.id == source_id or shape.id in descendants or shape.parent != source.parent:
                continue
            dx = delta_x if shape.x >= edges.right else 0
            dy = delta_y if shape.y >= edges.bottom else 0
            if dx or dy:
                self.move_shape(shape.id, dx, dy)
                moved.append(shape.id)

        return moved

    # --- Cleanup ---

    def settle_after_removal(self, former_parent: Optional[str], former_children: list[str]):
        """
        Repair visibility and group sizes after a shape was deleted.

        A former ancestor that grows pushes its siblings aside.
        """
        for child_id in former_children:
            self.refresh_visibility(child_id)
        self.refit_from(former_parent)

    # --- Placement and ordering ---

    def grid_position(self, index: int) -> tuple[float, float]:
        """
        Position for the index-th heading shape on the default grid.

        Rows wrap once a row would pass the wrap width.
        """
        settings = self._settings
        columns = settings.grid_columns
        col = index % columns
        row = index // columns
        return (settings.start_x + col * settings.step_x, settings.start_y + row * settings.step_y)

    def z_order(self) -> list[str]:
        """
        Shape ids back to front.

        Roots in insertion order, each followed by its subtree so children
        always paint above their group.
        """
        ordered: list[str] = []
        for shape in self._store.get_shapes():
            if shape.parent is None:
                ordered.append(shape.id)
                ordered.extend(d.id for d in self._store.iter_descendants(shape.id))
        return ordered

    def content_bounds(self) -> Optional[Rect]:
        """Bounding box of every visible shape."""
        return bounding_box(s for s in self._store.get_shapes() if s.visible)

    def canvas_size(self) -> tuple[float, float]:
        """Canvas extent: content plus a margin, never below the minimum."""
        bounds = self.content_bounds()
        if bounds is None:
            return (MIN_CANVAS_SIZE, MIN_CANVAS_SIZE)
        return (
            max(MIN_CANVAS_SIZE, bounds.right + CANVAS_MARGIN),
            max(MIN_CANVAS_SIZE, bounds.bottom + CANVAS_MARGIN),
        )
