"""Pluton: static analysis of Solana / Anchor programs."""

__version__ = "0.2.0"
