"""Client-side helpers for following generation progress."""
