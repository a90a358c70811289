"""Supplementary command line tooling."""

from .replay_walk import load_fixes, load_territories

__all__ = ["load_fixes", "load_territories"]
