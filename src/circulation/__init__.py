"""circulation: lending core for items with a limited number of copies."""

__version__ = "0.1.0"
