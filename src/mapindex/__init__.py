"""mapindex - compressed, incrementally maintained project map index."""

__version__ = "0.1.0"
