"""Nightly-rental rate comparison across booking channels."""

__version__ = "0.1.0"
