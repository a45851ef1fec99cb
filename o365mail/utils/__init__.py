"""Utility functions for o365mail."""

from o365mail.utils.helpers import ensure_dir, get_data_path

__all__ = ["ensure_dir", "get_data_path"]
