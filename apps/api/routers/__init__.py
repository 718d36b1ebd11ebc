"""Routers package."""

from . import (
    health,
    shares,
    files,
)
