"""Utility modules."""

from mailcase.utils.body_text import body_to_text, html_to_text, make_preview
from mailcase.utils.logger import bind_context, clear_context, get_logger, log_context

__all__ = [
    "body_to_text",
    "html_to_text",
    "make_preview",
    "get_logger",
    "bind_context",
    "clear_context",
    "log_context",
]
