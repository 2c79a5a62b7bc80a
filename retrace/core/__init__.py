"""Shared types, configuration, logging and errors."""
