"""Background control loops."""

from deploybox.control.reaper import ExpirationReaper

__all__ = ["ExpirationReaper"]
