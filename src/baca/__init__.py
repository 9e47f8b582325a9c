"""Background automated coding agent: dispatch a Change across many repositories."""

__version__ = "0.1.0"

__all__ = ["__version__"]
