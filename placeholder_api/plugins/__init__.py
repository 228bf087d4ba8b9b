"""Bundled plugins built on the placeholder engine."""

from placeholder_api.plugins.example import Actor, ExamplePlugin, Player, Vec3

__all__ = [
    "Actor",
    "ExamplePlugin",
    "Player",
    "Vec3",
]
