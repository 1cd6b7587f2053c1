"""Routers package."""

from . import (
    health,
    downloads,
    rewards,
    monetization,
)
