"""Zoom and scroll state of the canvas view."""

from typing import Optional

from .config import Settings, load_settings
from .geometry import Point, Rect, clamp


class Viewport:
    """
    Maps between screen and canvas coordinates.

    Screen coordinates are relative to the visible view; canvas coordinates
    are what shapes are stored in. ``canvas = (screen + scroll) / zoom``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or load_settings()
        self.zoom = 1.0
        self.scroll_x = 0.0
        self.scroll_y = 0.0

    def set_zoom(self, level: float) -> float:
        """Set the zoom level, clamped to the configured bounds."""
        self.zoom = round(clamp(level, self._settings.zoom_min, self._settings.zoom_max), 4)
        return self.zoom

    def zoom_in(self) -> float:
        return self.set_zoom(self.zoom + self._settings.zoom_step)

    def zoom_out(self) -> float:
        return self.set_zoom(self.zoom - self._settings.zoom_step)

    def scroll_to(self, x: float, y: float):
        self.scroll_x = max(0.0, x)
        self.scroll_y = max(0.0, y)

    def to_canvas(self, screen_x: float, screen_y: float) -> Point:
        """Convert a screen position to canvas coordinates."""
        return Point((screen_x + self.scroll_x) / self.zoom, (screen_y + self.scroll_y) / self.zoom)

    def to_screen(self, canvas_x: float, canvas_y: float) -> Point:
        """Convert a canvas position to screen coordinates."""
        return Point(canvas_x * self.zoom - self.scroll_x, canvas_y * self.zoom - self.scroll_y)

    def fit_view(self, content: Optional[Rect], view_width: float, view_height: float) -> float:
        """
        Zoom and scroll so the content fits the view.

        Never zooms in beyond 100%. With no content the view resets.

        Args:
            content: Bounding box of the visible shapes
            view_width: Width of the visible area in screen pixels
            view_height: Height of the visible area in screen pixels

        Returns:
            The new zoom level
        """
        if content is None or view_width <= 0 or view_height <= 0:
            self.set_zoom(1.0)
            self.scroll_to(0, 0)
            return self.zoom

        pad = self._settings.fit_padding
        padded = content.inflate(pad, pad, pad, pad)
        scale = min(view_width / padded.width, view_height / padded.height, 1.0)
        self.set_zoom(scale)

        center_x = padded.x + padded.width / 2
        center_y = padded.y + padded.height / 2
        self.scroll_to(center_x * self.zoom - view_width / 2, center_y * self.zoom - view_height / 2)
        return self.zoom

    def to_dict(self) -> dict:
        return {"zoom": self.zoom, "scrollX": self.scroll_x, "scrollY": self.scroll_y}
