"""niomon - Niomon authentication session and widget bridge SDK."""

__version__ = "0.4.0"
__logo__ = "⛩"
