"""Clinic claims RPA: visit lifecycle and claim routing engine."""

__version__ = "0.1.0"
