"""Inkwell: AI-assisted creative writing and companion chat backend."""

__version__ = "0.1.0"
