"""esdev - Development server for unbundled ES-module web projects."""

__version__ = "0.1.0"
