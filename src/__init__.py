"""Pecal billing service."""
