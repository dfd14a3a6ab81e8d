"""Loopback HTTP receiver for browser redirects."""
