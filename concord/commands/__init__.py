"""Command layer: named commands returning markdown results."""

from .processor import CommandProcessor

__all__ = ["CommandProcessor"]
