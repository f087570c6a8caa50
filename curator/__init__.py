"""Curator ranking core: tiers, tournaments and Elo ratings for curated collections."""

__version__ = "0.4.0"
