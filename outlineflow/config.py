"""Application configuration.

Settings are loaded from environment variables prefixed with ``OUTLINEFLOW_``.
For local development a `.env` file in the working directory is picked up, or
set ``OUTLINEFLOW_ENV_FILE`` to point at another one.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flowchart engine settings.

    All fields are environment-configurable. Prefix is `OUTLINEFLOW_`.
    """

    model_config = SettingsConfigDict(
        env_prefix="OUTLINEFLOW_",
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shapes
    shape_width: float = Field(default=120, gt=0)
    shape_height: float = Field(default=36, gt=0)  # heading-driven shapes
    manual_shape_height: float = Field(default=60, gt=0)  # user-placed shapes
    min_width: float = Field(default=50, gt=0)
    min_height: float = Field(default=30, gt=0)
    collapsed_width: float = Field(default=120, gt=0)
    collapsed_height: float = Field(default=36, gt=0)

    # Palette
    background_color: str = Field(default="#ffffff")
    border_color: str = Field(default="#cbd5e1")
    text_color: str = Field(default="#334155")
    connection_color: str = Field(default="#94a3b8")

    # Layout
    start_x: float = Field(default=50)
    start_y: float = Field(default=50)
    step_x: float = Field(default=150, gt=0)
    step_y: float = Field(default=100, gt=0)
    wrap_x: float = Field(default=800, gt=0)
    group_padding: float = Field(default=20, ge=0)
    group_header_height: float = Field(default=40, ge=0)
    placement: Literal["grid", "below_previous"] = Field(default="grid")
    placement_gap: float = Field(default=20, ge=0)

    # Interaction
    drag_threshold: float = Field(default=3, ge=0)
    handle_tolerance: float = Field(default=6, ge=0)
    anchor_tolerance: float = Field(default=10, ge=0)

    # Viewport
    zoom_min: float = Field(default=0.1, gt=0)
    zoom_max: float = Field(default=2.0, gt=0)
    zoom_step: float = Field(default=0.1, gt=0)
    fit_padding: float = Field(default=50, ge=0)

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8765, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    @property
    def grid_columns(self) -> int:
        """Number of grid columns before heading shapes wrap to a new row."""
        return max(1, int(self.wrap_x // self.step_x))


def load_settings() -> Settings:
    """Load settings from env.

    Returns:
        Settings: Parsed settings.
    """

    env_file_override = os.getenv("OUTLINEFLOW_ENV_FILE")
    if env_file_override:
        return Settings(_env_file=Path(env_file_override))

    default_env = Path.cwd() / ".env"
    if default_env.exists():
        return Settings(_env_file=default_env)

    return Settings()
