"""Command line interface for TokenMesh."""

from .main import cli

__all__ = ["cli"]
