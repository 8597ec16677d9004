"""Dependency-aware migration of n8n workflows between instances."""

__version__ = "1.0.0"
