"""Session synchronization client and its development authority."""

__version__ = "0.1.0"
