"""Batch QC of delivered image files against a project specification."""

__version__ = "0.1.0"
