"""Loyalty admin backend: commission rules, settings and calculation."""
