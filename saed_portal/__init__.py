"""Session, directory and routing core for the SAED enrollment portal."""

from .portal import Portal, create_portal

__all__ = ["Portal", "create_portal"]
