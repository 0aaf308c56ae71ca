"""Asynchronous capture digestion service."""
