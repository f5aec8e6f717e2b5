"""Surf Sense sensor session client."""
