"""
Outlineflow Backend - FastAPI Application

Binds one Flowchart to HTTP and WebSocket:
- REST API for shapes, connections, grouping, collapse and file operations
- Heading reconciliation for the outline editor
- Pointer gesture endpoints driving the interaction controller
- WebSocket endpoint broadcasting change notifications
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import load_settings
from ..flowchart import Flowchart
from ..interaction import HitTarget, ResizeHandle, TargetKind
from ..logging import configure_logging, get_logger
from ..models import (
    CreateConnectionRequest,
    CreateShapeRequest,
    GroupRequest,
    HeadingsRequest,
    UpdateConnectionRequest,
    UpdateShapeRequest,
)
from ..validation import validation_summary
from .websocket_manager import event, ws_manager

logger = get_logger(__name__)

settings = load_settings()
flowchart = Flowchart(settings)


# --- Async change notification ---
# Bridge between sync Flowchart callbacks and async WebSocket broadcasts.
# The event is created per lifespan so it belongs to the running loop.

_change_event: Optional[asyncio.Event] = None
_heading_requests: list[str] = []


def on_flowchart_change():
    """Callback for flowchart changes - sets event for async handler."""
    if _change_event is not None:
        _change_event.set()


def on_heading_request(heading_id: str):
    """Callback for clicks on heading shapes - queued for the broadcaster."""
    if _change_event is not None:
        _heading_requests.append(heading_id)
        _change_event.set()


flowchart.on_change(on_flowchart_change)
flowchart.on_heading_request(on_heading_request)


async def change_broadcaster(changed: asyncio.Event):
    """Background task that broadcasts changes to WebSocket clients."""
    while True:
        await changed.wait()
        changed.clear()

        while _heading_requests:
            await ws_manager.notify_heading_request(_heading_requests.pop(0))

        file_path = str(flowchart.file_path) if flowchart.file_path else None
        await ws_manager.notify_flowchart_updated(file_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    global _change_event

    configure_logging(settings.log_level)
    _change_event = asyncio.Event()
    broadcaster_task = asyncio.create_task(change_broadcaster(_change_event))
    logger.info("Flowchart backend started")

    yield

    broadcaster_task.cancel()
    try:
        await broadcaster_task
    except asyncio.CancelledError:
        pass
    _change_event = None
    _heading_requests.clear()


# --- FastAPI App ---

app = FastAPI(
    title="Outlineflow API",
    description="Flowchart scene graph and layout engine synchronized with an outline",
    version="0.1.0",
    lifespan=lifespan
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_shape(shape_id: str):
    shape = flowchart.store.get_shape(shape_id)
    if shape is None:
        raise HTTPException(status_code=404, detail="Shape not found")
    return shape


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "connections": ws_manager.connection_count}


# --- Flowchart State ---

@app.get("/api/flowchart")
async def get_flowchart():
    """Get the current flowchart state."""
    return flowchart.get_state()


@app.post("/api/flowchart/new")
async def new_flowchart():
    """Start an empty flowchart."""
    flowchart.new()
    return {"success": True, "flowchart": flowchart.to_json_dict()}


class OpenFlowchartRequest(BaseModel):
    file_path: str


@app.post("/api/flowchart/open")
async def open_flowchart(request: OpenFlowchartRequest):
    """Open a flowchart from a JSON file."""
    try:
        repairs = flowchart.open(request.file_path)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Failed to open flowchart: {e}")
    return {
        "success": True,
        "flowchart": flowchart.to_json_dict(),
        "file_path": str(flowchart.file_path),
        "repairs": repairs
    }


class SaveFlowchartRequest(BaseModel):
    file_path: Optional[str] = None


@app.post("/api/flowchart/save")
async def save_flowchart(request: SaveFlowchartRequest):
    """Save the flowchart to a JSON file."""
    try:
        path = flowchart.save(request.file_path)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save: {e}")
    return {"success": True, "file_path": str(path)}


@app.get("/api/flowchart/validate")
async def validate_flowchart():
    """
    Validate the shape tree for structural issues.

    Returns a list of issues (errors, warnings, info) and a summary.
    """
    issues = flowchart.validate()
    return {
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues)
    }


# --- Shape Operations ---

@app.post("/api/shapes")
async def create_shape(request: CreateShapeRequest):
    """Create a new shape."""
    shape_id = flowchart.add_shape(request.model_dump(exclude_none=True))
    if shape_id is None:
        raise HTTPException(status_code=409, detail="Shape id or heading already in use")
    return {"success": True, "shape": flowchart.store.get_shape(shape_id).to_json_dict()}


@app.get("/api/shapes/{shape_id}")
async def get_shape(shape_id: str):
    """Get a specific shape."""
    shape = _require_shape(shape_id)
    return {"success": True, "shape": shape.to_json_dict(), "visible": shape.visible}


@app.patch("/api/shapes/{shape_id}")
async def update_shape(shape_id: str, request: UpdateShapeRequest):
    """Update a shape (grouping fields are not patchable)."""
    shape = _require_shape(shape_id)
    if not flowchart.update_shape(shape_id, request.model_dump(exclude_unset=True)):
        raise HTTPException(status_code=409, detail="Heading already linked to another shape")
    return {"success": True, "shape": shape.to_json_dict()}


@app.delete("/api/shapes/{shape_id}")
async def delete_shape(shape_id: str):
    """Delete a shape; its children become roots and its connections go."""
    if flowchart.remove_shape(shape_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Shape not found")


@app.post("/api/shapes/{shape_id}/group")
async def group_shape(shape_id: str, request: GroupRequest):
    """Place a shape inside a group."""
    _require_shape(shape_id)
    _require_shape(request.parent_id)
    if not flowchart.group_shapes(request.parent_id, shape_id):
        raise HTTPException(status_code=409, detail="Grouping would create a cycle")
    return {"success": True, "parent": flowchart.store.get_shape(request.parent_id).to_json_dict()}


@app.post("/api/shapes/{shape_id}/ungroup")
async def ungroup_shape(shape_id: str):
    """Make a shape a root again."""
    _require_shape(shape_id)
    if not flowchart.ungroup_shape(shape_id):
        raise HTTPException(status_code=409, detail="Shape has no parent")
    return {"success": True}


@app.post("/api/shapes/{shape_id}/toggle-collapse")
async def toggle_collapse(shape_id: str):
    """Collapse or expand a group."""
    shape = _require_shape(shape_id)
    if not flowchart.toggle_collapse(shape_id):
        raise HTTPException(status_code=409, detail="Shape has no children")
    return {"success": True, "collapsed": shape.collapsed, "shape": shape.to_json_dict()}


@app.post("/api/shapes/{shape_id}/drop")
async def drop_shape(shape_id: str):
    """Resolve group membership for a shape at its current position."""
    shape = _require_shape(shape_id)
    outcome = flowchart.handle_drop(shape_id)
    return {"success": True, "outcome": outcome.value, "parent": shape.parent}


# --- Connection Operations ---

@app.post("/api/connections")
async def create_connection(request: CreateConnectionRequest):
    """Create a new connection."""
    connection_id = flowchart.add_connection(request.model_dump(exclude_none=True))
    if connection_id is None:
        raise HTTPException(status_code=404, detail="Connection endpoint not found")
    return {"success": True, "connection": flowchart.store.get_connection(connection_id).to_json_dict()}


@app.patch("/api/connections/{connection_id}")
async def update_connection(connection_id: str, request: UpdateConnectionRequest):
    """Update a connection; style keys are merged."""
    try:
        updated = flowchart.update_connection(connection_id, request.model_dump(exclude_none=True))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid connection style: {e.errors()[0]['msg']}")
    if not updated:
        raise HTTPException(status_code=404, detail="Connection not found")
    return {"success": True, "connection": flowchart.store.get_connection(connection_id).to_json_dict()}


@app.delete("/api/connections/{connection_id}")
async def delete_connection(connection_id: str):
    """Delete a connection."""
    if flowchart.remove_connection(connection_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Connection not found")


# --- Outline ---

@app.put("/api/headings")
async def sync_headings(request: HeadingsRequest):
    """Reconcile heading shapes with the editor's current headings."""
    result = flowchart.sync_headings(request.headings)
    return {"success": True, **result.to_dict()}


@app.get("/api/headings/{heading_id}/shape")
async def shape_for_heading(heading_id: str):
    """The shape linked to a heading (for highlighting)."""
    shape = flowchart.shape_for_heading(heading_id)
    if shape is None:
        raise HTTPException(status_code=404, detail="No shape for heading")
    return {"success": True, "shape": shape.to_json_dict()}


# --- Interaction ---

class ModeRequest(BaseModel):
    mode: str


@app.put("/api/mode")
async def set_mode(request: ModeRequest):
    """Switch tool mode (select, connect, pan)."""
    try:
        flowchart.set_mode(request.mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "mode": flowchart.controller.mode.value}


class TargetRequest(BaseModel):
    """Explicit pointer target; skips hit testing."""
    model_config = ConfigDict(populate_by_name=True)

    kind: TargetKind
    shape_id: Optional[str] = Field(default=None, alias="shapeId")
    handle: Optional[ResizeHandle] = None
    anchor: Optional[str] = None

    def to_hit_target(self) -> HitTarget:
        return HitTarget(self.kind, shape_id=self.shape_id, handle=self.handle, anchor=self.anchor)


class PointerRequest(BaseModel):
    """Pointer position in screen coordinates."""
    x: float
    y: float
    target: Optional[TargetRequest] = None


def _target(request: PointerRequest) -> Optional[HitTarget]:
    return request.target.to_hit_target() if request.target else None


@app.post("/api/pointer/down")
async def pointer_down(request: PointerRequest):
    started = flowchart.pointer_down(request.x, request.y, _target(request))
    return {"success": True, "started": started, "state": flowchart.controller.state.value}


@app.post("/api/pointer/move")
async def pointer_move(request: PointerRequest):
    changed = flowchart.pointer_move(request.x, request.y)
    return {"success": True, "changed": changed, "state": flowchart.controller.state.value}


@app.post("/api/pointer/up")
async def pointer_up(request: PointerRequest):
    result = flowchart.pointer_up(request.x, request.y, _target(request))
    return {
        "success": True,
        "gesture": result.gesture.value,
        "shape_id": result.shape_id,
        "moved": result.moved,
        "drop": result.drop.value if result.drop else None,
        "connection_id": result.connection_id,
        "heading_id": result.heading_id,
    }


@app.post("/api/pointer/cancel")
async def pointer_cancel():
    result = flowchart.cancel_gesture()
    return {"success": True, "gesture": result.gesture.value}


# --- Viewport ---

@app.post("/api/viewport/zoom-in")
async def zoom_in():
    return {"success": True, "zoom": flowchart.zoom_in()}


@app.post("/api/viewport/zoom-out")
async def zoom_out():
    return {"success": True, "zoom": flowchart.zoom_out()}


class FitViewRequest(BaseModel):
    width: float
    height: float


@app.post("/api/viewport/fit")
async def fit_view(request: FitViewRequest):
    """Zoom and scroll so every visible shape fits the view."""
    zoom = flowchart.fit_view(request.width, request.height)
    return {"success": True, "zoom": zoom, "viewport": flowchart.viewport.to_dict()}


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Clients connect here to receive flowchart_updated events.
    """
    await ws_manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await ws_manager.send(websocket, event("pong"))
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)


def main():
    """Run the backend with uvicorn."""
    import uvicorn

    configure_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
