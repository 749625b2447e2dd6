"""Headshot order-to-generation backend."""
