"""Client for watching remote portfolio-analysis runs."""

__version__ = "0.1.0"
