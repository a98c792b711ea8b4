"""ImportMap - map delimited import columns onto target captions."""

__version__ = "0.1.0"
