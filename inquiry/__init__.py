"""Inquiry Complex: a browsable, rateable tree of philosophical argument."""

__version__ = "0.3.0"
