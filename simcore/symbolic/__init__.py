"""Symbolic equation processing."""

from .simplifier import SympySimplifier

__all__ = ["SympySimplifier"]
