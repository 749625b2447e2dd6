"""Core infrastructure: settings, logging, database and timezone setup."""
