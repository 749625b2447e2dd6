"""Headshot inference and generation execution."""
