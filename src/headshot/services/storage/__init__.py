"""Image hosting."""
