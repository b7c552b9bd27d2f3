"""
Shape Store - Owns the shape map and connection list.

This module implements:
- An id-indexed shape arena (insertion ordered) where `parent`/`children`
  are ids, never live references
- O(1) connection and heading lookups via index dictionaries
- Transactional shape removal (ungroup, orphan children, drop connections)
- Loading/dumping the persisted document with invariant repair

Mutations never raise for unknown ids; they return False/None instead.
"""

from typing import Any, Iterator, Optional

from .config import Settings, load_settings
from .logging import get_logger
from .models import Connection, ConnectionStyle, FlowchartDocument, Shape

logger = get_logger(__name__)

# Fields owned by the grouping logic; `update_shape` never touches them
STRUCTURAL_FIELDS = frozenset({"id", "parent", "children"})


def _field_names(model: type, values: dict[str, Any]) -> dict[str, Any]:
    """Map wire aliases (``headingId``, ``from``) onto attribute names."""
    by_alias = {f.alias: name for name, f in model.model_fields.items() if f.alias}
    return {by_alias.get(key, key): value for key, value in values.items()}


class ShapeStore:
    """
    Owns all shapes and connections of one flowchart.

    Features:
    - O(1) shape/connection lookups via index dictionaries
    - Heading index (heading id -> shape id) for outline sync
    - Connections-by-shape index for cascade deletion

    Every instance is independent; nothing is shared at module level.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or load_settings()
        self._shapes: dict[str, Shape] = {}              # shape_id -> Shape
        self._connections: list[Connection] = []
        self._connection_index: dict[str, Connection] = {}    # conn_id -> Connection
        self._connections_by_shape: dict[str, set[str]] = {}  # shape_id -> conn_ids
        self._heading_index: dict[str, str] = {}              # heading_id -> shape_id

    # --- Index Management ---

    def _rebuild_indexes(self):
        """Rebuild all indexes from the current shapes and connections."""
        self._connection_index.clear()
        self._connections_by_shape.clear()
        self._heading_index.clear()

        for shape in self._shapes.values():
            self._index_heading(shape)
        for connection in self._connections:
            self._index_connection(connection)

    def _index_heading(self, shape: Shape):
        if shape.heading_id is not None:
            self._heading_index.setdefault(shape.heading_id, shape.id)

    def _unindex_heading(self, shape: Shape):
        if shape.heading_id is None or self._heading_index.get(shape.heading_id) != shape.id:
            return
        del self._heading_index[shape.heading_id]
        # A loaded document may carry the same heading twice; promote the next one
        for other in self._shapes.values():
            if other.id != shape.id and other.heading_id == shape.heading_id:
                self._heading_index[shape.heading_id] = other.id
                break

    def _index_connection(self, connection: Connection):
        self._connection_index[connection.id] = connection
        for shape_id in (connection.from_shape, connection.to_shape):
            self._connections_by_shape.setdefault(shape_id, set()).add(connection.id)

    def _unindex_connection(self, connection: Connection):
        self._connection_index.pop(connection.id, None)
        for shape_id in (connection.from_shape, connection.to_shape):
            if shape_id in self._connections_by_shape:
                self._connections_by_shape[shape_id].discard(connection.id)

    # --- Shape Queries ---

    def __len__(self) -> int:
        return len(self._shapes)

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._shapes

    def get_shape(self, shape_id: Optional[str]) -> Optional[Shape]:
        """Get a shape by ID (O(1) lookup)."""
        if shape_id is None:
            return None
        return self._shapes.get(shape_id)

    def get_shapes(self) -> list[Shape]:
        """All shapes in insertion order."""
        return list(self._shapes.values())

    def find_by_heading(self, heading_id: str) -> Optional[Shape]:
        """Get the shape linked to a heading (O(1) index lookup)."""
        shape_id = self._heading_index.get(heading_id)
        return self._shapes.get(shape_id) if shape_id else None

    def iter_descendants(self, shape_id: str) -> Iterator[Shape]:
        """Depth-first walk over the subtree below a shape (excluding it)."""
        shape = self._shapes.get(shape_id)
        if shape is None:
            return
        stack = list(reversed(shape.children))
        visited = {shape_id}
        while stack:
            child_id = stack.pop()
            if child_id in visited:
                continue
            visited.add(child_id)
            child = self._shapes.get(child_id)
            if child is None:
                continue
            yield child
            stack.extend(reversed(child.children))

    def iter_ancestors(self, shape_id: str) -> Iterator[Shape]:
        """Walk up the parent chain, nearest ancestor first."""
        shape = self._shapes.get(shape_id)
        visited = {shape_id}
        while shape is not None and shape.parent is not None and shape.parent not in visited:
            visited.add(shape.parent)
            shape = self._shapes.get(shape.parent)
            if shape is not None:
                yield shape

    # --- Shape Operations ---

    def add_shape(self, data: Optional[dict[str, Any]] = None, **fields: Any) -> Optional[str]:
        """
        Add a new shape, filling omitted fields with defaults.

        Group membership cannot be set here; use the containment resolver.

        Returns:
            The shape id, or None if a caller-supplied id is already taken or
            the heading is already linked to another shape
        """
        values = _field_names(Shape, {**(data or {}), **fields})
        for key in ("parent", "children", "visible"):
            if values.pop(key, None):
                logger.debug("Ignoring %r on new shape; grouping goes through the resolver", key)

        shape_id = values.get("id")
        if shape_id is not None and shape_id in self._shapes:
            logger.warning("Shape id already exists: %s", shape_id)
            return None
        heading_id = values.get("heading_id")
        if heading_id is not None and heading_id in self._heading_index:
            logger.warning("Heading %s is already linked to shape %s", heading_id, self._heading_index[heading_id])
            return None

        settings = self._settings
        defaults = {
            "x": settings.start_x,
            "y": settings.start_y,
            "width": settings.shape_width,
            "height": settings.manual_shape_height,
            "background_color": settings.background_color,
            "border_color": settings.border_color,
            "color": settings.text_color,
        }
        for key, value in defaults.items():
            if values.get(key) is None:
                values[key] = value
        if values.get("id") is None:
            values.pop("id", None)

        shape = Shape.model_validate(values)
        self._clamp_size(shape)
        self._shapes[shape.id] = shape
        self._index_heading(shape)
        logger.debug("Added shape %s", shape.id)
        return shape.id

    def update_shape(self, shape_id: str, patch: Optional[dict[str, Any]] = None, **fields: Any) -> bool:
        """
        Shallow-merge a patch into a shape.

        `id`, `parent` and `children` are ignored; grouping goes through the
        containment resolver so the parent/children links stay consistent.

        Returns:
            False (and no mutation) if the shape does not exist or the patch
            would link a heading that another shape already owns
        """
        shape = self._shapes.get(shape_id)
        if shape is None:
            return False

        changes = _field_names(Shape, {**(patch or {}), **fields})
        for key in STRUCTURAL_FIELDS.intersection(changes):
            logger.warning("Ignoring structural field %r in update of %s", key, shape_id)
            changes.pop(key)
        unknown = [key for key in changes if key not in Shape.model_fields or key == "visible"]
        for key in unknown:
            changes.pop(key)
        if not changes:
            return True

        new_heading = changes.get("heading_id", shape.heading_id)
        if new_heading != shape.heading_id and new_heading is not None:
            owner = self._heading_index.get(new_heading)
            if owner is not None and owner != shape_id:
                logger.warning("Heading %s is already linked to shape %s", new_heading, owner)
                return False

        # Validate the merged record before touching the live one
        merged = Shape.model_validate({**shape.model_dump(), **changes})

        self._unindex_heading(shape)
        for key in changes:
            setattr(shape, key, getattr(merged, key))
        self._clamp_size(shape)
        self._index_heading(shape)
        return True

    def remove_shape(self, shape_id: str) -> bool:
        """
        Delete a shape.

        Detaches it from its parent, makes its children parentless (they are
        not deleted) and drops every connection touching it.
        """
        shape = self._shapes.get(shape_id)
        if shape is None:
            return False

        parent = self._shapes.get(shape.parent) if shape.parent else None
        if parent is not None:
            parent.children = [c for c in parent.children if c != shape_id]

        for child_id in shape.children:
            child = self._shapes.get(child_id)
            if child is not None and child.parent == shape_id:
                child.parent = None

        # Remove all connections touching this shape
        for conn_id in list(self._connections_by_shape.pop(shape_id, set())):
            connection = self._connection_index.get(conn_id)
            if connection is not None:
                self._unindex_connection(connection)
        self._connections = [c for c in self._connections if c.id in self._connection_index]

        self._unindex_heading(shape)
        del self._shapes[shape_id]
        logger.debug("Removed shape %s", shape_id)
        return True

    def _clamp_size(self, shape: Shape):
        shape.width = max(self._settings.min_width, shape.width)
        shape.height = max(self._settings.min_height, shape.height)

    # --- Connection Operations ---

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        """Get a connection by ID (O(1) lookup)."""
        return self._connection_index.get(connection_id)

    def get_connections(self) -> list[Connection]:
        """All connections in creation order."""
        return list(self._connections)

    def get_connections_for_shape(self, shape_id: str) -> list[Connection]:
        """Get all connections touching a shape (O(1) index lookup)."""
        ids = self._connections_by_shape.get(shape_id, set())
        return [c for c in self._connections if c.id in ids]

    def add_connection(self, data: Optional[dict[str, Any]] = None, **fields: Any) -> Optional[str]:
        """
        Add a connection between two existing shapes.

        Several connections between the same pair are allowed.

        Returns:
            The connection id, or None if an endpoint does not exist or the
            supplied id is already taken
        """
        values = _field_names(Connection, {**(data or {}), **fields})
        if values.get("id") is None:
            values.pop("id", None)
        elif values["id"] in self._connection_index:
            logger.warning("Connection id already exists: %s", values["id"])
            return None

        for key in ("from_shape", "to_shape"):
            if values.get(key) not in self._shapes:
                logger.warning("Connection endpoint not found: %s", values.get(key))
                return None
        for key in ("from_point", "to_point"):
            if values.get(key) is None:
                values.pop(key, None)
        if values.get("style") is None:
            values["style"] = ConnectionStyle(color=self._settings.connection_color)

        connection = Connection.model_validate(values)
        self._connections.append(connection)
        self._index_connection(connection)
        logger.debug("Added connection %s (%s -> %s)", connection.id, connection.from_shape, connection.to_shape)
        return connection.id

    def update_connection(self, connection_id: str, patch: Optional[dict[str, Any]] = None, **fields: Any) -> bool:
        """
        Merge a patch into a connection.

        A `style` patch is merged key-wise into the existing style. Moving an
        endpoint onto a shape that does not exist fails without mutation.

        Raises:
            ValidationError: If the merged style is not a known line type or
                arrow style (the connection is left untouched)
        """
        connection = self._connection_index.get(connection_id)
        if connection is None:
            return False

        changes = _field_names(Connection, {**(patch or {}), **fields})
        changes.pop("id", None)
        for key in ("from_shape", "to_shape"):
            if key in changes and changes[key] not in self._shapes:
                logger.warning("Connection endpoint not found: %s", changes[key])
                return False

        style_patch = changes.pop("style", None)
        if isinstance(style_patch, ConnectionStyle):
            style_patch = style_patch.model_dump(exclude_unset=True)
        style = connection.style.model_dump()
        style.update(style_patch or {})

        candidate = {**connection.model_dump(), **changes, "style": style}
        merged = Connection.model_validate(candidate)

        self._unindex_connection(connection)
        for key in ("from_shape", "to_shape", "from_point", "to_point", "style"):
            setattr(connection, key, getattr(merged, key))
        self._index_connection(connection)
        return True

    def remove_connection(self, connection_id: str) -> bool:
        """Delete a connection."""
        connection = self._connection_index.get(connection_id)
        if connection is None:
            return False

        self._connections = [c for c in self._connections if c.id != connection_id]
        self._unindex_connection(connection)
        return True

    # --- Persistence ---

    def clear(self):
        """Drop every shape and connection."""
        self._shapes.clear()
        self._connections = []
        self._rebuild_indexes()

    def dump(self, zoom_level: float = 1.0) -> FlowchartDocument:
        """Snapshot the store as a detached, serializable document."""
        return FlowchartDocument(
            shapes=[s.model_copy(deep=True) for s in self._shapes.values()],
            connections=[c.model_copy(deep=True) for c in self._connections],
            zoom_level=zoom_level,
        )

    def load(self, document: FlowchartDocument) -> int:
        """
        Replace the store contents with a document, repairing invariants.

        Dangling references are dropped, parent/children links are made
        bidirectional (a child's own `parent` wins a conflict), links that
        would close a cycle are cut and connections with a missing endpoint
        are discarded. Visibility is not computed here.

        Returns:
            Number of repairs made
        """
        self._shapes = {}
        for shape in document.shapes:
            if shape.id in self._shapes:
                logger.warning("Duplicate shape id in document: %s", shape.id)
                continue
            self._shapes[shape.id] = shape.model_copy(deep=True)

        repairs = self._repair_links()

        self._connections = []
        seen: set[str] = set()
        for connection in document.connections:
            if connection.id in seen or connection.from_shape not in self._shapes or connection.to_shape not in self._shapes:
                logger.warning("Dropping invalid connection %s", connection.id)
                repairs += 1
                continue
            seen.add(connection.id)
            self._connections.append(connection.model_copy(deep=True))

        self._rebuild_indexes()
        if repairs:
            logger.info("Repaired %d inconsistencies while loading", repairs)
        return repairs

    def _repair_links(self) -> int:
        repairs = 0
        shapes = self._shapes

        # Children must exist, be unique and not be the shape itself
        for shape in shapes.values():
            cleaned: list[str] = []
            for child_id in shape.children:
                if child_id in shapes and child_id != shape.id and child_id not in cleaned:
                    cleaned.append(child_id)
            repairs += len(shape.children) - len(cleaned)
            shape.children = cleaned

        # Parent pointers must exist
        for shape in shapes.values():
            if shape.parent is not None and (shape.parent not in shapes or shape.parent == shape.id):
                shape.parent = None
                repairs += 1

        # Listed children adopt the listing parent when they have none
        for shape in shapes.values():
            kept: list[str] = []
            for child_id in shape.children:
                child = shapes[child_id]
                if child.parent is None:
                    child.parent = shape.id
                    repairs += 1
                if child.parent == shape.id:
                    kept.append(child_id)
                else:
                    repairs += 1
            shape.children = kept

        # Parent pointers must be listed by the parent
        for shape in shapes.values():
            if shape.parent is not None:
                parent = shapes[shape.parent]
                if shape.id not in parent.children:
                    parent.children.append(shape.id)
                    repairs += 1

        # Cut any link that closes a cycle
        for shape in shapes.values():
            seen = {shape.id}
            cursor = shape.parent
            while cursor is not None:
                if cursor in seen:
                    if cursor == shape.id:
                        parent = shapes[shape.parent]
                        parent.children = [c for c in parent.children if c != shape.id]
                        shape.parent = None
                        repairs += 1
                    break
                seen.add(cursor)
                cursor = shapes[cursor].parent

        return repairs
