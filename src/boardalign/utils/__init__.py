"""Shared utilities for boardalign."""
