"""CLI module for o365mail."""
