"""Batch command-line entry points."""
