"""Minimal URL shortening service backed by SQLite."""

from shortener.app import create_app

__all__ = ["create_app"]
