"""Task lifecycle workflow engine with deadline monitoring."""

__version__ = "0.1.0"
