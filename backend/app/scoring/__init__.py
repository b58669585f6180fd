"""Scoring engines for club games."""

from . import mahjong

__all__ = [
    "mahjong",
]
