"""
Core data models for flowcharts.

These models define the canonical schema for a flowchart:
- Shapes with geometry, colors, an optional heading link and group membership
- Connections between shapes (using from/to naming on the wire)
- Headings supplied by the outline editor
- The persisted document (shape pairs, connections, zoom level)

Field Naming Convention:
- Python attributes are snake_case (`heading_id`, `from_shape`)
- JSON serialization outputs the camelCase keys of the wire format
  (`headingId`, `from`, `fromPoint`, ...)
- Both spellings are accepted on input; legacy `source`/`target` connection
  keys are converted
"""

from enum import Enum
from typing import Any, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AnchorSide(str, Enum):
    """Sides of a shape a connection can attach to."""
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


class LineType(str, Enum):
    """Line styles for connections."""
    SOLID = "solid"
    DASHED = "dashed"


class ArrowStyle(str, Enum):
    """Arrow heads drawn on a connection."""
    NONE = "none"
    END = "end"      # Arrow at the target end
    BOTH = "both"    # Arrows at both ends


def generate_shape_id() -> str:
    """Generate a unique shape ID."""
    return f"shape-{uuid.uuid4().hex[:8]}"


def generate_connection_id() -> str:
    """Generate a unique connection ID."""
    return f"conn-{uuid.uuid4().hex[:8]}"


class Size(BaseModel):
    """A remembered width/height pair."""
    width: float
    height: float


class Shape(BaseModel):
    """A rectangular node in the flowchart."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_shape_id)
    text: str = ""
    x: float = 0
    y: float = 0
    width: float = 120
    height: float = 60
    background_color: Optional[str] = Field(default=None, alias="backgroundColor")
    border_color: Optional[str] = Field(default=None, alias="borderColor")
    color: Optional[str] = None
    # Heading link (None = user-created shape, never touched by outline sync)
    heading_id: Optional[str] = Field(default=None, alias="headingId")
    heading_index: Optional[int] = Field(default=None, alias="headingIndex")
    # Group membership (ids, not references)
    parent: Optional[str] = None
    children: list[str] = Field(default_factory=list)
    # Collapse state
    collapsed: bool = False
    collapsed_size: Optional[Size] = Field(default=None, alias="collapsedSize")
    expanded_size: Optional[Size] = Field(default=None, alias="expandedSize")
    # Derived from the collapsed flags of ancestors; never persisted
    visible: bool = Field(default=True, exclude=True)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def center(self) -> tuple[float, float]:
        """Get the center point of the shape."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        return (self.x, self.y, self.right, self.bottom)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict with wire field names."""
        return self.model_dump(mode="json", by_alias=True)


class ConnectionStyle(BaseModel):
    """Visual style of a connection."""
    color: Optional[str] = None
    type: str = LineType.SOLID.value
    arrow: str = ArrowStyle.END.value
    label: Optional[str] = None

    @field_validator('type')
    @classmethod
    def check_line_type(cls, value: str) -> str:
        return LineType(value).value

    @field_validator('arrow')
    @classmethod
    def check_arrow(cls, value: str) -> str:
        return ArrowStyle(value).value


class Connection(BaseModel):
    """
    A directed link between two shapes.

    Uses `from`/`to` on the wire. Accepts `source`/`target` on input for
    backward compatibility.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_connection_id)
    from_shape: str = Field(alias="from")
    to_shape: str = Field(alias="to")
    from_point: str = Field(default=AnchorSide.BOTTOM.value, alias="fromPoint")
    to_point: str = Field(default=AnchorSide.TOP.value, alias="toPoint")
    style: ConnectionStyle = Field(default_factory=ConnectionStyle)

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert legacy 'source'/'target' fields to 'from'/'to'."""
        if isinstance(data, dict):
            data = dict(data)
            if 'source' in data and 'from' not in data and 'from_shape' not in data:
                data['from'] = data.pop('source')
            if 'target' in data and 'to' not in data and 'to_shape' not in data:
                data['to'] = data.pop('target')
            if data.get('style') is None:
                data.pop('style', None)
        return data

    def touches(self, shape_id: str) -> bool:
        """True if either endpoint is the given shape."""
        return self.from_shape == shape_id or self.to_shape == shape_id

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json", by_alias=True)


class Heading(BaseModel):
    """A heading reported by the outline editor."""
    id: str
    text: str = ""
    level: int = Field(default=1, ge=1, le=4)


class FlowchartDocument(BaseModel):
    """
    The persisted flowchart state.
    This is what gets saved to/loaded from JSON files.
    """
    shapes: list[Shape] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    zoom_level: float = 1.0

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict: shapes as (id, shape) pairs."""
        return {
            "shapes": [[s.id, s.to_json_dict()] for s in self.shapes],
            "connections": [c.to_json_dict() for c in self.connections],
            "zoomLevel": self.zoom_level,
        }

    @classmethod
    def from_json_dict(cls, data: dict) -> "FlowchartDocument":
        """Create a document from a JSON dict (handles legacy formats).

        Shapes may be given as a list of ``[id, shape]`` pairs or as a
        ``{id: shape}`` mapping. The pair/map key wins over any ``id`` inside
        the shape record.
        """
        raw_shapes = data.get('shapes') or []
        if isinstance(raw_shapes, dict):
            pairs = list(raw_shapes.items())
        else:
            pairs = [(item[0], item[1]) for item in raw_shapes]

        shapes = [Shape.model_validate({**shape_data, "id": shape_id}) for shape_id, shape_data in pairs]
        connections = [Connection.model_validate(c) for c in data.get('connections') or []]

        return cls(
            shapes=shapes,
            connections=connections,
            zoom_level=data.get('zoomLevel', data.get('zoom_level', 1.0)) or 1.0,
        )


# --- API Request/Response Models ---

class CreateShapeRequest(BaseModel):
    """Request to create a new shape (omitted fields use defaults)."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    text: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    background_color: Optional[str] = Field(default=None, alias="backgroundColor")
    border_color: Optional[str] = Field(default=None, alias="borderColor")
    color: Optional[str] = None
    heading_id: Optional[str] = Field(default=None, alias="headingId")


class UpdateShapeRequest(BaseModel):
    """Request to update an existing shape (partial update)."""
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    background_color: Optional[str] = Field(default=None, alias="backgroundColor")
    border_color: Optional[str] = Field(default=None, alias="borderColor")
    color: Optional[str] = None
    heading_id: Optional[str] = Field(default=None, alias="headingId")


class CreateConnectionRequest(BaseModel):
    """Request to create a new connection."""
    model_config = ConfigDict(populate_by_name=True)

    from_shape: str = Field(alias="from")
    to_shape: str = Field(alias="to")
    from_point: Optional[str] = Field(default=None, alias="fromPoint")
    to_point: Optional[str] = Field(default=None, alias="toPoint")
    style: Optional[ConnectionStyle] = None


class UpdateConnectionRequest(BaseModel):
    """Request to update a connection; `style` is merged key-wise."""
    model_config = ConfigDict(populate_by_name=True)

    from_point: Optional[str] = Field(default=None, alias="fromPoint")
    to_point: Optional[str] = Field(default=None, alias="toPoint")
    style: Optional[dict[str, Any]] = None


class GroupRequest(BaseModel):
    """Request to place a shape under a parent."""
    model_config = ConfigDict(populate_by_name=True)

    parent_id: str = Field(alias="parentId")


class HeadingsRequest(BaseModel):
    """The editor's current ordered heading list."""
    headings: list[Heading] = Field(default_factory=list)
