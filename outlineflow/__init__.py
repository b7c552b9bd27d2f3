"""
Outlineflow - Flowchart scene graph and layout engine.

Shapes live in an id-indexed store, can be nested into collapsible groups by
dropping one onto another, and stay synchronized with the headings of an
outline editor. This package provides the models, geometry, layout rules,
pointer interaction and persistence; `outlineflow.server` exposes them over
HTTP and WebSocket.
"""

from .models import (
    # Enums
    AnchorSide,
    LineType,
    ArrowStyle,
    # Core models
    Size,
    Shape,
    ConnectionStyle,
    Connection,
    Heading,
    FlowchartDocument,
    # Request models (for API)
    CreateShapeRequest,
    UpdateShapeRequest,
    CreateConnectionRequest,
    UpdateConnectionRequest,
    GroupRequest,
    HeadingsRequest,
)

from .config import Settings, load_settings
from .geometry import Point, Rect, ConnectionPath, center_inside, bounding_box, route_connection
from .store import ShapeStore
from .layout import LayoutEngine
from .containment import ContainmentResolver, DropOutcome
from .viewport import Viewport
from .interaction import InteractionController, HitTarget, Mode, GestureState, ResizeHandle, GestureResult
from .outline_sync import OutlineSync, SyncResult
from .validation import validate_flowchart, validation_summary, ValidationIssue, IssueSeverity
from .flowchart import Flowchart

__all__ = [
    # Enums
    "AnchorSide",
    "LineType",
    "ArrowStyle",
    # Models
    "Size",
    "Shape",
    "ConnectionStyle",
    "Connection",
    "Heading",
    "FlowchartDocument",
    # Request models
    "CreateShapeRequest",
    "UpdateShapeRequest",
    "CreateConnectionRequest",
    "UpdateConnectionRequest",
    "GroupRequest",
    "HeadingsRequest",
    # Configuration
    "Settings",
    "load_settings",
    # Geometry
    "Point",
    "Rect",
    "ConnectionPath",
    "center_inside",
    "bounding_box",
    "route_connection",
    # Components
    "ShapeStore",
    "LayoutEngine",
    "ContainmentResolver",
    "DropOutcome",
    "Viewport",
    "InteractionController",
    "HitTarget",
    "Mode",
    "GestureState",
    "ResizeHandle",
    "GestureResult",
    "OutlineSync",
    "SyncResult",
    # Validation
    "validate_flowchart",
    "validation_summary",
    "ValidationIssue",
    "IssueSeverity",
    # Facade
    "Flowchart",
]
