"""Resumable, gated build pipeline for templated marketing websites."""

__version__ = "0.4.0"
