"""Delegated session authorization and sponsored execution for agent smart accounts."""

__version__ = "0.1.0"
