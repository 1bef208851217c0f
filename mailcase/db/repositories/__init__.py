"""DB repositories: sync functions returning domain models (the message and directory stores)."""

from mailcase.db.repositories import directory_repo, message_repo, sync_state_repo

__all__ = ["directory_repo", "message_repo", "sync_state_repo"]
