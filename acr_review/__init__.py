"""Verification reconciliation engine for accessibility conformance reviews."""

__version__ = "0.1.0"
