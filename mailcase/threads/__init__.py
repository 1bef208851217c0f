"""Thread assembly (pure) and store-backed thread operations."""

from mailcase.threads.assembler import (
    NO_SUBJECT,
    build_thread,
    determine_case_id,
    dominant_case_id,
    extract_participants,
    group_into_threads,
    link_by_headers,
    normalize_subject,
    parse_message_headers,
)
from mailcase.threads.service import ThreadService

__all__ = [
    "NO_SUBJECT",
    "build_thread",
    "determine_case_id",
    "dominant_case_id",
    "extract_participants",
    "group_into_threads",
    "link_by_headers",
    "normalize_subject",
    "parse_message_headers",
    "ThreadService",
]
