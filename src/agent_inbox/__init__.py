"""Track background agent tasks across independent processes."""

__version__ = "0.1.0"
