"""Shared fixtures for outlineflow tests."""

import pytest

from outlineflow.config import Settings
from outlineflow.containment import ContainmentResolver
from outlineflow.flowchart import Flowchart
from outlineflow.layout import LayoutEngine
from outlineflow.store import ShapeStore


@pytest.fixture
def settings():
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def store(settings):
    return ShapeStore(settings)


@pytest.fixture
def layout(store, settings):
    return LayoutEngine(store, settings)


@pytest.fixture
def containment(store, layout):
    return ContainmentResolver(store, layout)


@pytest.fixture
def box(store):
    """Factory adding a shape with explicit geometry; returns the live record."""
    def make(x, y, width, height, **fields):
        shape_id = store.add_shape(x=x, y=y, width=width, height=height, **fields)
        return store.get_shape(shape_id)
    return make


@pytest.fixture
def flowchart(settings):
    return Flowchart(settings)


@pytest.fixture
def fbox(flowchart):
    """Like `box`, but on the flowchart fixture's store."""
    def make(x, y, width, height, **fields):
        shape_id = flowchart.add_shape(x=x, y=y, width=width, height=height, **fields)
        return flowchart.store.get_shape(shape_id)
    return make
