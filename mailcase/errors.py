"""Exceptions raised across ingestion, threading and classification."""


class MailcaseError(Exception):
    """Base class for all mailcase errors."""


class IngestionError(MailcaseError):
    """Provider or storage failure during a sync run. The stored cursor was not advanced."""

    def __init__(self, user_id: str, message: str):
        super().__init__(f"sync failed for user {user_id}: {message}")
        self.user_id = user_id


class FirmMismatchError(MailcaseError):
    """A message, or a case, was about to be linked to a case or client of another firm."""

    def __init__(self, message_firm_id: str, target_firm_id: str | None, target: str):
        super().__init__(
            f"{target} belongs to firm {target_firm_id!r}, expected firm {message_firm_id!r}"
        )
        self.message_firm_id = message_firm_id
        self.target_firm_id = target_firm_id
        self.target = target


class MessageNotFoundError(MailcaseError):
    pass


class CaseNotFoundError(MailcaseError):
    pass


class ClassificationLockedError(MailcaseError):
    """The message was classified by a human; automated writes need force=True."""

    def __init__(self, message_id: str, classified_by: str | None):
        super().__init__(f"message {message_id} was classified by {classified_by}; use force to override")
        self.message_id = message_id
        self.classified_by = classified_by
