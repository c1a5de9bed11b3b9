"""Cleanup pipeline components."""
