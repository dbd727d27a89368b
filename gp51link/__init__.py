"""GP51 session and connection reliability service."""

__version__ = "0.1.0"
