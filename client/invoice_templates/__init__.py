"""Client for managing invoice templates and their smart field mapping."""

__version__ = "0.1.0"
