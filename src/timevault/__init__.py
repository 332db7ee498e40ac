"""timevault: timevault/__init__.py."""

__version__ = "0.1.0"

MARKER_NAME = ".timevault"
CURRENT_NAME = "current"
