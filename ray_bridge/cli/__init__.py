"""CLI module for Ray Bridge."""
