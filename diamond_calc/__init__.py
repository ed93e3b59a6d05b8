"""Jewelry cost estimation: gold, making charges and slab-priced stones."""

__version__ = "0.1.0"
