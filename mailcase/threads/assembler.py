"""Group messages into conversation threads.

Everything here is pure: threads are a view over messages and are rebuilt on every
read, so they can never drift from the stored classification state.
"""

import re
from collections import Counter
from typing import Iterable, Mapping

from mailcase.models.message import EmailAddress, Message
from mailcase.models.thread import MessageHeaders, Thread, ThreadParticipant

NO_SUBJECT = "(No Subject)"

# One or more chained reply/forward markers: "Re:", "RE[2]:", "Fwd:", "FW:", "Re: Fw:"
_REPLY_PREFIX = re.compile(r"^\s*(?:(?:re|fwd?)(?:\s*\[\d+\])?\s*:\s*)+", re.IGNORECASE)
_ANGLE_ID = re.compile(r"<([^>]+)>")


def normalize_subject(subject: str | None) -> str:
    """Strip leading reply/forward markers. Idempotent; empty results become "(No Subject)"."""
    stripped = _REPLY_PREFIX.sub("", subject or "").strip()
    return stripped or NO_SUBJECT


def _sort_key(message: Message):
    return (message.received_at, message.id)


def extract_participants(messages: Iterable[Message]) -> list[ThreadParticipant]:
    """Roster of from/to/cc addresses, case-insensitively merged, in first-seen order."""
    by_address: dict[str, ThreadParticipant] = {}

    def _touch(addr: EmailAddress | None, role: str) -> ThreadParticipant | None:
        if addr is None or not addr.address.strip():
            return None
        key = addr.normalized
        participant = by_address.get(key)
        if participant is None:
            participant = ThreadParticipant(email=addr.address.strip(), name=addr.name)
            by_address[key] = participant
        elif participant.name is None and addr.name:
            participant.name = addr.name
        if role not in participant.roles:
            participant.roles.append(role)
        return participant

    for message in messages:
        sender = _touch(message.sender, "sender")
        if sender is not None:
            sender.message_count += 1
        for recipient in message.to_recipients:
            _touch(recipient, "recipient")
        for recipient in message.cc_recipients:
            _touch(recipient, "cc")

    return list(by_address.values())


def dominant_case_id(case_ids: Iterable[str | None]) -> str | None:
    """Most frequent non-null id in a chronological sequence.

    Ties go to the id seen latest, then to the smaller id.
    """
    counts: Counter[str] = Counter()
    last_seen: dict[str, int] = {}
    for index, case_id in enumerate(case_ids):
        if case_id:
            counts[case_id] += 1
            last_seen[case_id] = index
    if not counts:
        return None
    return min(counts, key=lambda case_id: (-counts[case_id], -last_seen[case_id], case_id))


def determine_case_id(messages: list[Message]) -> str | None:
    """Dominant case of a chronologically sorted thread."""
    return dominant_case_id(m.case_id for m in messages)


def build_thread(conversation_id: str, messages: list[Message]) -> Thread:
    ordered = sorted(messages, key=_sort_key)
    first, last = ordered[0], ordered[-1]
    return Thread(
        conversation_id=conversation_id,
        subject=normalize_subject(first.subject),
        messages=ordered,
        participants=extract_participants(ordered),
        case_id=determine_case_id(ordered),
        has_unread=any(not m.is_read for m in ordered),
        has_attachments=any(m.has_attachments for m in ordered),
        first_message_at=first.received_at,
        last_message_at=last.received_at,
        user_id=first.user_id,
    )


def group_into_threads(messages: Iterable[Message]) -> list[Thread]:
    """Partition messages by conversation id; newest conversation first.

    Messages without a conversation id become single-message threads keyed by their
    provider id.
    """
    by_conversation: dict[str, list[Message]] = {}
    for message in messages:
        by_conversation.setdefault(message.thread_key, []).append(message)

    threads = [build_thread(cid, items) for cid, items in by_conversation.items()]
    threads.sort(key=lambda t: t.conversation_id)
    threads.sort(key=lambda t: t.last_message_at, reverse=True)
    return threads


def _extract_message_id(value: str) -> str | None:
    match = _ANGLE_ID.search(value)
    if match:
        return match.group(1).strip() or None
    return value.strip() or None


def parse_message_headers(
    headers: Iterable[Mapping[str, str]] | Mapping[str, str] | None,
) -> MessageHeaders:
    """Read In-Reply-To and References from raw transport headers.

    Accepts either a list of {"name", "value"} dicts (Graph internetMessageHeaders) or a
    plain name -> value mapping. Missing headers yield None / [].
    """
    if not headers:
        return MessageHeaders()
    if isinstance(headers, Mapping):
        pairs = list(headers.items())
    else:
        pairs = [(h.get("name", ""), h.get("value", "")) for h in headers]

    in_reply_to = None
    references: list[str] = []
    for name, value in pairs:
        lowered = (name or "").strip().lower()
        if lowered == "in-reply-to":
            in_reply_to = _extract_message_id(value or "")
        elif lowered == "references":
            for token in (value or "").split():
                extracted = _extract_message_id(token)
                if extracted:
                    references.append(extracted)
    return MessageHeaders(in_reply_to=in_reply_to, references=references)


def _ancestors(message: Message) -> list[str]:
    """In-Reply-To first, then References newest to oldest."""
    ancestors = [message.in_reply_to] if message.in_reply_to else []
    ancestors.extend(reversed(message.references))
    return [a.strip("<>") for a in ancestors if a]


def unthreaded_ancestors(messages: Iterable[Message]) -> set[str]:
    """Message-IDs referenced by the messages that arrived without a conversation id."""
    return {a for m in messages if not m.conversation_id for a in _ancestors(m)}


def link_by_headers(messages: Iterable[Message], known: Mapping[str, str] | None = None) -> list[Message]:
    """Fill missing conversation ids from In-Reply-To / References.

    A message without a conversation id joins the thread of its closest ancestor, looked
    up among the given messages and then in `known` (Message-ID to thread key, e.g. the
    stored messages). Messages with a provider conversation id are returned unchanged.
    """
    ordered = sorted(messages, key=_sort_key)
    key_by_internet_id: dict[str, str] = dict(known or {})
    linked: list[Message] = []
    for message in ordered:
        if not message.conversation_id:
            for ancestor in _ancestors(message):
                key = key_by_internet_id.get(ancestor)
                if key:
                    message = message.model_copy(update={"conversation_id": key})
                    break
        if message.internet_message_id:
            key_by_internet_id[message.internet_message_id.strip("<>")] = message.thread_key
        linked.append(message)
    return linked
