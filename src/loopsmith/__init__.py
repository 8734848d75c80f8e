"""Loopsmith: document evaluation through an external CLI engine."""

__version__ = "0.1.0"
