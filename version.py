"""Single source of truth for the Fly Score plugin version."""

__version__ = "0.9.0"
