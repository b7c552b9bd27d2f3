"""
Flowchart - One editable flowchart with persistence and change callbacks.

This module implements:
- Wiring of store, layout, containment, interaction, viewport and outline sync
- JSON file persistence
- Change/save/heading-request callbacks for real-time sync
- A render snapshot (shapes, connection curves, view state)

Every public mutation notifies the change callbacks when it changed anything.
"""

import json
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from .config import Settings, load_settings
from .containment import ContainmentResolver, DropOutcome
from .geometry import ConnectionPath, Rect, route_connection
from .interaction import GestureResult, GestureState, HitTarget, InteractionController
from .layout import LayoutEngine
from .logging import get_logger
from .models import FlowchartDocument, Heading
from .outline_sync import OutlineSync, SyncResult
from .store import ShapeStore
from .validation import ValidationIssue, validate_flowchart
from .viewport import Viewport

logger = get_logger(__name__)

GEOMETRY_FIELDS = frozenset({"x", "y", "width", "height"})


class Flowchart:
    """
    A flowchart bound to an optional file on disk.

    Components are public attributes so callers can reach the lower-level
    operations directly; the wrapper methods add change notification and
    the follow-up layout work.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        self.store = ShapeStore(self.settings)
        self.layout = LayoutEngine(self.store, self.settings)
        self.containment = ContainmentResolver(self.store, self.layout)
        self.viewport = Viewport(self.settings)
        self.controller = InteractionController(
            self.store,
            self.containment,
            self.layout,
            self.viewport,
            self.settings,
            on_heading_request=self._notify_heading_request,
        )
        self.outline = OutlineSync(self.store, self.layout, self.settings)

        self._file_path: Optional[Path] = None
        self._dirty = False
        self._on_change_callbacks: list[Callable] = []
        self._on_save_callbacks: list[Callable] = []
        self._on_heading_callbacks: list[Callable] = []

    # --- Properties ---

    @property
    def file_path(self) -> Optional[Path]:
        """Get the current file path."""
        return self._file_path

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    # --- Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for flowchart changes."""
        self._on_change_callbacks.append(callback)

    def on_save(self, callback: Callable):
        """Register a callback for saves.

        Callback receives (path: Path, info: dict) where info contains
        shape_count and connection_count.
        """
        self._on_save_callbacks.append(callback)

    def on_heading_request(self, callback: Callable):
        """Register a callback receiving the heading id of a clicked shape."""
        self._on_heading_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    def _touch(self, changed: Any = True) -> Any:
        if changed:
            self._dirty = True
            self._notify_change()
        return changed

    def _notify_save(self, path: Path):
        info = {
            "shape_count": len(self.store),
            "connection_count": len(self.store.get_connections()),
        }
        for callback in self._on_save_callbacks:
            try:
                callback(path, info)
            except Exception:
                logger.exception("Save callback failed for %s", path)

    def _notify_heading_request(self, heading_id: str):
        for callback in self._on_heading_callbacks:
            callback(heading_id)

    # --- File Operations ---

    def new(self):
        """Start an empty flowchart."""
        self.store.clear()
        self.viewport.set_zoom(1.0)
        self.viewport.scroll_to(0, 0)
        self.controller.set_mode("select")
        self._file_path = None
        self._dirty = False
        self._notify_change()

    def load_json_dict(self, data: dict) -> int:
        """
        Replace the contents with a JSON document.

        Returns:
            Number of inconsistencies repaired while loading
        """
        try:
            document = FlowchartDocument.from_json_dict(data)
        except (ValidationError, TypeError, IndexError, AttributeError) as e:
            raise ValueError(f"Invalid flowchart document: {e}") from e

        if self.controller.state != GestureState.IDLE:
            self.controller.cancel()
        self.controller.clear_selection()
        repairs = self.store.load(document)
        self.layout.recompute_visibility()
        self.viewport.set_zoom(document.zoom_level)
        return repairs

    def open(self, file_path: Union[str, Path]) -> int:
        """Open a flowchart from a JSON file."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Flowchart file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Flowchart file is not valid JSON: {path}") from e

        repairs = self.load_json_dict(data)
        self._file_path = path
        self._dirty = False
        logger.info("Opened %s (%d shapes)", path, len(self.store))
        self._notify_change()
        return repairs

    def save(self, file_path: Optional[Union[str, Path]] = None) -> Path:
        """
        Save the flowchart to a JSON file.

        If file_path is provided, save to that path (Save As).
        Otherwise, save to the current file_path.
        """
        if file_path:
            path = Path(file_path)
        elif self._file_path:
            path = self._file_path
        else:
            raise ValueError("No file path specified and no current file path")

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_json_dict(), f, indent=2)

        self._file_path = path
        self._dirty = False
        logger.info("Saved %s", path)
        self._notify_save(path)
        return path

    def to_json_dict(self) -> dict:
        """The persisted document as a JSON-serializable dict."""
        return self.store.dump(zoom_level=self.viewport.zoom).to_json_dict()

    # --- Shape Operations ---

    def add_shape(self, data: Optional[dict] = None, **fields: Any) -> Optional[str]:
        return self._touch(self.store.add_shape(data, **fields))

    def update_shape(self, shape_id: str, patch: Optional[dict] = None, **fields: Any) -> bool:
        """Patch a shape; geometry changes refit the groups above it."""
        changes = {**(patch or {}), **fields}
        if not self.store.update_shape(shape_id, changes):
            return False
        if "collapsed" in changes:
            self.layout.refresh_visibility(shape_id)
        if GEOMETRY_FIELDS.intersection(changes):
            self.layout.refit_ancestors(shape_id, displace=False)
        return self._touch()

    def remove_shape(self, shape_id: str) -> bool:
        shape = self.store.get_shape(shape_id)
        if shape is None:
            return False
        parent, children = shape.parent, list(shape.children)
        self.store.remove_shape(shape_id)
        self.layout.settle_after_removal(parent, children)
        if self.controller.selected_shape_id == shape_id:
            self.controller.clear_selection()
        return self._touch()

    def group_shapes(self, parent_id: str, child_id: str) -> bool:
        return self._touch(self.containment.group_shapes(parent_id, child_id))

    def ungroup_shape(self, child_id: str) -> bool:
        return self._touch(self.containment.ungroup_shape(child_id))

    def toggle_collapse(self, shape_id: str) -> bool:
        return self._touch(self.layout.toggle_collapse(shape_id))

    def handle_drop(self, shape_id: str) -> DropOutcome:
        outcome = self.containment.handle_drop(shape_id)
        self._touch(outcome != DropOutcome.UNCHANGED)
        return outcome

    # --- Connection Operations ---

    def add_connection(self, data: Optional[dict] = None, **fields: Any) -> Optional[str]:
        return self._touch(self.store.add_connection(data, **fields))

    def update_connection(self, connection_id: str, patch: Optional[dict] = None, **fields: Any) -> bool:
        return self._touch(self.store.update_connection(connection_id, patch, **fields))

    def remove_connection(self, connection_id: str) -> bool:
        if self.controller.selected_connection_id == connection_id:
            self.controller.clear_selection()
        return self._touch(self.store.remove_connection(connection_id))

    # --- Outline ---

    def sync_headings(self, headings: Iterable[Union[Heading, dict]]) -> SyncResult:
        """Reconcile heading-linked shapes with the editor's headings."""
        result = self.outline.reconcile(headings)
        self._touch(result.changed)
        return result

    def shape_for_heading(self, heading_id: str):
        return self.outline.shape_for_heading(heading_id)

    def heading_for_shape(self, shape_id: str) -> Optional[str]:
        return self.outline.heading_for_shape(shape_id)

    # --- Interaction ---

    def set_mode(self, mode: str):
        self.controller.set_mode(mode)

    def pointer_down(self, x: float, y: float, target: Optional[HitTarget] = None) -> bool:
        return self.controller.pointer_down(x, y, target)

    def pointer_move(self, x: float, y: float) -> bool:
        return self._touch(self.controller.pointer_move(x, y))

    def pointer_up(self, x: float, y: float, target: Optional[HitTarget] = None) -> GestureResult:
        result = self.controller.pointer_up(x, y, target)
        self._touch(result.moved or result.connection_id is not None)
        return result

    def cancel_gesture(self) -> GestureResult:
        result = self.controller.cancel()
        self._notify_change()
        return result

    # --- Viewport ---

    def zoom_in(self) -> float:
        return self.viewport.zoom_in()

    def zoom_out(self) -> float:
        return self.viewport.zoom_out()

    def fit_view(self, view_width: float, view_height: float) -> float:
        return self.viewport.fit_view(self.layout.content_bounds(), view_width, view_height)

    # --- Rendering ---

    def connection_paths(self) -> dict[str, ConnectionPath]:
        """Curves for connections whose endpoints are both visible."""
        paths: dict[str, ConnectionPath] = {}
        for connection in self.store.get_connections():
            source = self.store.get_shape(connection.from_shape)
            target = self.store.get_shape(connection.to_shape)
            if source is None or target is None or not (source.visible and target.visible):
                continue
            paths[connection.id] = route_connection(source, target, connection.from_point, connection.to_point)
        return paths

    def get_state(self) -> dict:
        """Everything a renderer needs, in wire format."""
        shapes = []
        for shape_id in self.layout.z_order():
            shape = self.store.get_shape(shape_id)
            shapes.append({**shape.to_json_dict(), "visible": shape.visible})

        paths = self.connection_paths()
        connections = []
        for connection in self.store.get_connections():
            path = paths.get(connection.id)
            connections.append({
                **connection.to_json_dict(),
                "visible": path is not None,
                "geometry": path.to_dict() if path is not None else None,
            })

        width, height = self.layout.canvas_size()
        bounds: Optional[Rect] = self.layout.content_bounds()
        return {
            "shapes": shapes,
            "connections": connections,
            "canvas": {"width": width, "height": height},
            "bounds": None if bounds is None else {
                "x": bounds.x, "y": bounds.y, "width": bounds.width, "height": bounds.height,
            },
            "viewport": self.viewport.to_dict(),
            "interaction": self.controller.to_dict(),
            "dirty": self._dirty,
            "filePath": str(self._file_path) if self._file_path else None,
        }

    # --- Validation ---

    def validate(self) -> list[ValidationIssue]:
        return validate_flowchart(self.store)
