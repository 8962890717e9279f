"""Semantic version utilities."""
