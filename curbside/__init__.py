"""Curbside municipal sanitation service portal"""

__version__ = "0.1.0"
