"""Grocery shopping agent: cache-gated tool-calling orchestration."""

__version__ = "0.1.0"
