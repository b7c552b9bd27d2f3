"""
Outline synchronization - keeps heading-linked shapes in step with the editor.

Every call reconciles the full heading list against the shapes:
- A heading without a shape gets one (grid placement by default)
- A linked shape whose text or position in the outline changed is updated
- A linked shape whose heading disappeared is removed
- Shapes created by the user (no heading link) are never touched

Reconciliation is idempotent: a second call with the same list changes nothing.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from .config import Settings, load_settings
from .layout import LayoutEngine
from .logging import get_logger
from .models import Heading, Shape
from .store import ShapeStore

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """Shape ids touched by one reconciliation."""
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.adopted or self.removed)

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "adopted": self.adopted,
            "removed": self.removed,
        }


class OutlineSync:
    """Reconciles the heading list with heading-linked shapes."""

    def __init__(self, store: ShapeStore, layout: LayoutEngine, settings: Optional[Settings] = None):
        self._store = store
        self._layout = layout
        self._settings = settings or load_settings()

    def reconcile(self, headings: Iterable[Union[Heading, dict[str, Any]]]) -> SyncResult:
        """
        Bring heading-linked shapes in line with the given headings.

        Args:
            headings: The editor's headings in document order

        Returns:
            SyncResult listing created, updated, adopted and removed shapes
        """
        ordered = [h if isinstance(h, Heading) else Heading.model_validate(h) for h in headings]
        result = SyncResult()

        unseen = [s.id for s in self._store.get_shapes() if s.heading_id is not None]
        seen_shapes: set[str] = set()
        seen_headings: set[str] = set()

        for index, heading in enumerate(ordered):
            if heading.id in seen_headings:
                logger.warning("Duplicate heading id %s at position %d; skipped", heading.id, index)
                continue
            seen_headings.add(heading.id)

            shape = self._store.find_by_heading(heading.id)
            if shape is None:
                shape = self._legacy_match(index, seen_shapes)
                if shape is not None:
                    self._store.update_shape(shape.id, heading_id=heading.id)
                    result.adopted.append(shape.id)

            if shape is None:
                shape_id = self._create(heading, index, ordered)
                seen_shapes.add(shape_id)
                result.created.append(shape_id)
                continue

            seen_shapes.add(shape.id)
            patch: dict[str, Any] = {}
            if shape.text != heading.text:
                patch["text"] = heading.text
            if shape.heading_index != index:
                patch["heading_index"] = index
            if patch:
                self._store.update_shape(shape.id, patch)
                if shape.id not in result.adopted:
                    result.updated.append(shape.id)

        for shape_id in unseen:
            if shape_id in seen_shapes:
                continue
            shape = self._store.get_shape(shape_id)
            if shape is None:
                continue
            parent, children = shape.parent, list(shape.children)
            self._store.remove_shape(shape_id)
            self._layout.settle_after_removal(parent, children)
            result.removed.append(shape_id)

        if result.changed:
            logger.info(
                "Outline sync: %d created, %d updated, %d adopted, %d removed",
                len(result.created), len(result.updated), len(result.adopted), len(result.removed),
            )
        return result

    def _legacy_match(self, index: int, seen: set[str]) -> Optional[Shape]:
        # Documents saved before heading ids existed only carry the position
        for shape in self._store.get_shapes():
            if shape.heading_id is None and shape.heading_index == index and shape.id not in seen:
                return shape
        return None

    def _create(self, heading: Heading, index: int, ordered: list[Heading]) -> str:
        x, y = self._placement(index, ordered)
        return self._store.add_shape(
            text=heading.text,
            x=x,
            y=y,
            width=self._settings.shape_width,
            height=self._settings.shape_height,
            heading_id=heading.id,
            heading_index=index,
        )

    def _placement(self, index: int, ordered: list[Heading]) -> tuple[float, float]:
        if self._settings.placement == "below_previous" and index > 0:
            previous = self._store.find_by_heading(ordered[index - 1].id)
            if previous is not None:
                return (previous.x, previous.bottom + self._settings.placement_gap)
        return self._layout.grid_position(index)

    # --- Editor bridge ---

    def shape_for_heading(self, heading_id: str) -> Optional[Shape]:
        """The shape to highlight when the editor cursor enters a heading."""
        return self._store.find_by_heading(heading_id)

    def heading_for_shape(self, shape_id: str) -> Optional[str]:
        """The heading the editor should scroll to when a shape is clicked."""
        shape = self._store.get_shape(shape_id)
        return shape.heading_id if shape is not None else None
