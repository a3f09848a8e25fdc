"""A minimal in-memory Kubernetes API server for local testing."""

__version__ = "0.1.0"

__all__ = ["__version__"]