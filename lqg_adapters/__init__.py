"""LQG protocol adapters: read optimizer and vault state and export it in a common schema."""
__version__ = "0.1.0"

__all__ = [
    "adapters",
    "config",
    "core",
]
