"""Auto host rotation for osu! multiplayer rooms."""

__version__ = "0.1.0"
