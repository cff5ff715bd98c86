"""Network addressing and CPU allocation utilities for the pot jail framework."""

__version__ = "0.5.0"

__all__ = ["__version__"]