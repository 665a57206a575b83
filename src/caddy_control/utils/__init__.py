"""Shared utilities for caddy-control."""

__all__: list[str] = []  # Direct submodule imports required
