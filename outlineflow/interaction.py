"""
Interaction controller - pointer gestures on the canvas.

Translates pointer-down/move/up sequences into shape mutations:
- Dragging a shape (with its subtree), resolving membership on release
- Resizing from one of eight compass handles
- Drawing a connection between two anchors
- Panning the view

Only one gesture is active at a time. Pointer positions are given in screen
coordinates and converted through the viewport.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .config import Settings, load_settings
from .containment import ContainmentResolver, DropOutcome
from .geometry import Point, Rect, anchor_point, contains_point, nearest_anchor
from .layout import LayoutEngine
from .logging import get_logger
from .models import Shape
from .store import ShapeStore
from .viewport import Viewport

logger = get_logger(__name__)


class Mode(str, Enum):
    """Tool mode selected in the toolbar."""
    SELECT = "select"
    CONNECT = "connect"
    PAN = "pan"


class GestureState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    PANNING = "panning"
    CONNECTING = "connecting"


class TargetKind(str, Enum):
    SHAPE = "shape"
    RESIZE_HANDLE = "resize_handle"
    ANCHOR = "anchor"
    CANVAS = "canvas"


class ResizeHandle(str, Enum):
    N = "n"
    NE = "ne"
    E = "e"
    SE = "se"
    S = "s"
    SW = "sw"
    W = "w"
    NW = "nw"


@dataclass(frozen=True)
class HitTarget:
    """What lies under the pointer."""
    kind: TargetKind
    shape_id: Optional[str] = None
    handle: Optional[ResizeHandle] = None
    anchor: Optional[str] = None

    @classmethod
    def canvas(cls) -> "HitTarget":
        return cls(TargetKind.CANVAS)

    @classmethod
    def shape(cls, shape_id: str) -> "HitTarget":
        return cls(TargetKind.SHAPE, shape_id=shape_id)

    @classmethod
    def resize(cls, shape_id: str, handle: str) -> "HitTarget":
        return cls(TargetKind.RESIZE_HANDLE, shape_id=shape_id, handle=ResizeHandle(handle))

    @classmethod
    def anchor_of(cls, shape_id: str, side: str) -> "HitTarget":
        return cls(TargetKind.ANCHOR, shape_id=shape_id, anchor=side)


@dataclass
class GestureResult:
    """Summary of a finished gesture."""
    gesture: GestureState
    shape_id: Optional[str] = None
    moved: bool = False
    drop: Optional[DropOutcome] = None
    connection_id: Optional[str] = None
    heading_id: Optional[str] = None  # set when a click asked to scroll the editor


@dataclass
class _Gesture:
    state: GestureState = GestureState.IDLE
    shape_id: Optional[str] = None
    start_screen: Optional[Point] = None
    start_canvas: Optional[Point] = None
    start_rect: Optional[Rect] = None
    start_scroll: Optional[Point] = None
    handle: Optional[ResizeHandle] = None
    anchor: Optional[str] = None
    moved: bool = False


def resize_rect(start: Rect, handle: ResizeHandle, dx: float, dy: float, min_width: float, min_height: float) -> Rect:
    """
    Apply a handle drag to a rectangle.

    East/south handles move the far edge; west/north handles move the origin
    and keep the opposite edge fixed. Sizes never drop below the minimum.
    """
    x, y, width, height = start.x, start.y, start.width, start.height
    name = handle.value

    if "e" in name:
        width = max(min_width, start.width + dx)
    if "s" in name:
        height = max(min_height, start.height + dy)
    if "w" in name:
        width = max(min_width, start.width - dx)
        x = start.x + (start.width - width)
    if "n" in name:
        height = max(min_height, start.height - dy)
        y = start.y + (start.height - height)

    return Rect(x, y, width, height)


class InteractionController:
    """
    Pointer state machine.

    States: idle, dragging, resizing, panning, connecting. A new gesture can
    only start from idle; every gesture ends back in idle.
    """

    def __init__(
        self,
        store: ShapeStore,
        containment: ContainmentResolver,
        layout: LayoutEngine,
        viewport: Viewport,
        settings: Optional[Settings] = None,
        on_heading_request: Optional[Callable[[str], None]] = None,
    ):
        self._store = store
        self._containment = containment
        self._layout = layout
        self._viewport = viewport
        self._settings = settings or load_settings()
        self._on_heading_request = on_heading_request

        self.mode = Mode.SELECT
        self.selected_shape_id: Optional[str] = None
        self.selected_connection_id: Optional[str] = None
        self._gesture = _Gesture()
        self._pointer: Optional[Point] = None

    @property
    def state(self) -> GestureState:
        return self._gesture.state

    @property
    def active_shape_id(self) -> Optional[str]:
        return self._gesture.shape_id

    # --- Mode and selection ---

    def set_mode(self, mode: str):
        """Switch tool mode; drops the selection and any gesture in progress."""
        mode = Mode(mode)
        if self._gesture.state != GestureState.IDLE:
            self.cancel()
        self.mode = mode
        self.clear_selection()

    def select_shape(self, shape_id: Optional[str]):
        self.selected_shape_id = shape_id if shape_id in self._store else None
        self.selected_connection_id = None

    def select_connection(self, connection_id: Optional[str]):
        self.selected_connection_id = connection_id if self._store.get_connection(connection_id or "") else None
        self.selected_shape_id = None

    def clear_selection(self):
        self.selected_shape_id = None
        self.selected_connection_id = None

    # --- Hit testing ---

    def hit_test(self, x: float, y: float) -> HitTarget:
        """
        Find the topmost target at a canvas position.

        Children are checked before their groups. Resize handles are only
        offered in select mode and anchors only in connect mode.
        """
        for shape_id in reversed(self._layout.z_order()):
            shape = self._store.get_shape(shape_id)
            if shape is None or not shape.visible:
                continue
            if self.mode == Mode.CONNECT:
                side = nearest_anchor(shape, x, y, self._settings.anchor_tolerance)
                if side is not None:
                    return HitTarget.anchor_of(shape_id, side)
            elif self.mode == Mode.SELECT:
                handle = self._handle_at(shape, x, y)
                if handle is not None:
                    return HitTarget(TargetKind.RESIZE_HANDLE, shape_id=shape_id, handle=handle)
            if contains_point(shape, x, y):
                return HitTarget.shape(shape_id)
        return HitTarget.canvas()

    def _handle_at(self, shape: Shape, x: float, y: float) -> Optional[ResizeHandle]:
        tol = self._settings.handle_tolerance
        cx = shape.x + shape.width / 2
        cy = shape.y + shape.height / 2
        points = {
            ResizeHandle.NW: (shape.x, shape.y),
            ResizeHandle.N: (cx, shape.y),
            ResizeHandle.NE: (shape.right, shape.y),
            ResizeHandle.E: (shape.right, cy),
            ResizeHandle.SE: (shape.right, shape.bottom),
            ResizeHandle.S: (cx, shape.bottom),
            ResizeHandle.SW: (shape.x, shape.bottom),
            ResizeHandle.W: (shape.x, cy),
        }
        for handle, (hx, hy) in points.items():
            if abs(x - hx) <= tol and abs(y - hy) <= tol:
                return handle
        return None

    # --- Pointer events ---

    def pointer_down(self, x: float, y: float, target: Optional[HitTarget] = None) -> bool:
        """
        Start a gesture at a screen position.

        Args:
            x, y: Pointer position in screen coordinates
            target: What was pressed; hit-tested when omitted

        Returns:
            True if a gesture started
        """
        if self._gesture.state != GestureState.IDLE:
            logger.debug("Ignoring pointer down during %s", self._gesture.state.value)
            return False

        screen = Point(x, y)
        canvas = self._viewport.to_canvas(x, y)
        if target is None:
            target = self.hit_test(canvas.x, canvas.y)

        shape = self._store.get_shape(target.shape_id)
        if target.kind != TargetKind.CANVAS and shape is None:
            target = HitTarget.canvas()

        if self.mode == Mode.PAN:
            return self._begin(GestureState.PANNING, screen, canvas)

        if target.kind == TargetKind.RESIZE_HANDLE and self.mode != Mode.CONNECT:
            self.select_shape(shape.id)
            return self._begin(GestureState.RESIZING, screen, canvas, shape=shape, handle=target.handle)

        if self.mode == Mode.CONNECT:
            if target.kind == TargetKind.ANCHOR:
                return self._begin(GestureState.CONNECTING, screen, canvas, shape=shape, anchor=target.anchor)
            return False

        if target.kind in (TargetKind.SHAPE, TargetKind.ANCHOR):
            self.select_shape(shape.id)
            return self._begin(GestureState.DRAGGING, screen, canvas, shape=shape)

        self.clear_selection()
        return self._begin(GestureState.PANNING, screen, canvas)

    def _begin(
        self,
        state: GestureState,
        screen: Point,
        canvas: Point,
        shape: Optional[Shape] = None,
        handle: Optional[ResizeHandle] = None,
        anchor: Optional[str] = None,
    ) -> bool:
        self._gesture = _Gesture(
            state=state,
            shape_id=shape.id if shape is not None else None,
            start_screen=screen,
            start_canvas=canvas,
            start_rect=Rect.of(shape) if shape is not None else None,
            start_scroll=Point(self._viewport.scroll_x, self._viewport.scroll_y),
            handle=handle,
            anchor=anchor,
        )
        self._pointer = canvas
        return True

    def pointer_move(self, x: float, y: float) -> bool:
        """
        Continue the active gesture.

        Returns:
            True if shapes or the view changed
        """
        gesture = self._gesture
        if gesture.state == GestureState.IDLE:
            return False

        canvas = self._viewport.to_canvas(x, y)
        self._pointer = canvas

        if gesture.state == GestureState.PANNING:
            self._viewport.scroll_to(
                gesture.start_scroll.x - (x - gesture.start_screen.x),
                gesture.start_scroll.y - (y - gesture.start_screen.y),
            )
            return True

        if gesture.state == GestureState.CONNECTING:
            return False

        shape = self._store.get_shape(gesture.shape_id)
        if shape is None:
            logger.warning("Shape %s disappeared during %s", gesture.shape_id, gesture.state.value)
            self._reset()
            return False

        dx = canvas.x - gesture.start_canvas.x
        dy = canvas.y - gesture.start_canvas.y

        if gesture.state == GestureState.DRAGGING:
            if not gesture.moved:
                threshold = self._settings.drag_threshold
                if abs(x - gesture.start_screen.x) <= threshold and abs(y - gesture.start_screen.y) <= threshold:
                    return False
                gesture.moved = True
            new_x = max(0.0, gesture.start_rect.x + dx)
            new_y = max(0.0, gesture.start_rect.y + dy)
            self._layout.move_shape(shape.id, new_x - shape.x, new_y - shape.y)
            return True

        # Resizing
        rect = resize_rect(
            gesture.start_rect, gesture.handle, dx, dy,
            self._settings.min_width, self._settings.min_height,
        )
        shape.x, shape.y, shape.width, shape.height = rect.x, rect.y, rect.width, rect.height
        gesture.moved = True
        self._layout.refit_ancestors(shape.id, displace=False)
        return True

    def pointer_up(self, x: float, y: float, target: Optional[HitTarget] = None) -> GestureResult:
        """
        Finish the active gesture.

        A drag that crossed the threshold resolves group membership; one that
        did not is a click, which asks the editor to scroll to the shape's
        heading. A connection is created only when released on an anchor of
        a different shape.
        """
        gesture = self._gesture
        result = GestureResult(gesture=gesture.state, shape_id=gesture.shape_id, moved=gesture.moved)
        if gesture.state == GestureState.IDLE:
            return result

        try:
            if gesture.state in (GestureState.DRAGGING, GestureState.RESIZING, GestureState.CONNECTING):
                shape = self._store.get_shape(gesture.shape_id)
                if shape is None:
                    logger.warning("Shape %s disappeared during %s", gesture.shape_id, gesture.state.value)
                    return result
            if gesture.state == GestureState.DRAGGING:
                self._finish_drag(shape, result)
            elif gesture.state == GestureState.RESIZING:
                self._finish_resize(shape)
            elif gesture.state == GestureState.CONNECTING:
                self._finish_connect(shape, x, y, target, result)
        finally:
            self._reset()

        return result

    def _finish_drag(self, shape: Shape, result: GestureResult):
        if self._gesture.moved:
            result.drop = self._containment.handle_drop(shape.id)
        elif shape.heading_id is not None:
            result.heading_id = shape.heading_id
            if self._on_heading_request is not None:
                self._on_heading_request(shape.heading_id)

    def _finish_resize(self, shape: Shape):
        if not shape.children:
            return
        # Remember the manual size for the current collapse state
        size = {"width": shape.width, "height": shape.height}
        if shape.collapsed:
            self._store.update_shape(shape.id, collapsed_size=size)
        else:
            self._store.update_shape(shape.id, expanded_size=size)

    def _finish_connect(self, source: Shape, x: float, y: float, target: Optional[HitTarget], result: GestureResult):
        if target is None:
            canvas = self._viewport.to_canvas(x, y)
            target = self.hit_test(canvas.x, canvas.y)
        if target.kind != TargetKind.ANCHOR or target.shape_id == source.id or target.shape_id not in self._store:
            logger.debug("Connection from %s abandoned", source.id)
            return
        result.connection_id = self._store.add_connection(
            from_shape=source.id,
            to_shape=target.shape_id,
            from_point=self._gesture.anchor,
            to_point=target.anchor,
        )

    def cancel(self) -> GestureResult:
        """Abort the active gesture, restoring the shape's starting geometry."""
        gesture = self._gesture
        result = GestureResult(gesture=gesture.state, shape_id=gesture.shape_id)
        shape = self._store.get_shape(gesture.shape_id)
        if shape is not None and gesture.start_rect is not None:
            start = gesture.start_rect
            if gesture.state == GestureState.DRAGGING:
                self._layout.move_shape(shape.id, start.x - shape.x, start.y - shape.y)
            elif gesture.state == GestureState.RESIZING:
                shape.x, shape.y, shape.width, shape.height = start.x, start.y, start.width, start.height
                self._layout.refit_ancestors(shape.id, displace=False)
        elif gesture.state == GestureState.PANNING and gesture.start_scroll is not None:
            self._viewport.scroll_to(gesture.start_scroll.x, gesture.start_scroll.y)
        self._reset()
        return result

    def _reset(self):
        self._gesture = _Gesture()
        self._pointer = None

    # --- Rendering helpers ---

    def connection_preview(self) -> Optional[tuple[Point, Point]]:
        """Start anchor and current pointer while a connection is being drawn."""
        gesture = self._gesture
        if gesture.state != GestureState.CONNECTING or self._pointer is None:
            return None
        shape = self._store.get_shape(gesture.shape_id)
        if shape is None:
            return None
        return (anchor_point(shape, gesture.anchor), self._pointer)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "state": self._gesture.state.value,
            "selectedShape": self.selected_shape_id,
            "selectedConnection": self.selected_connection_id,
        }
