from typing import List, Optional


class SyncCycleError(Exception):
    """A user sync cycle could not complete. The watermark was not advanced."""

    def __init__(self, message: str, email: Optional[str] = None):
        self.email = email
        super().__init__(message)


class UserNotFoundError(SyncCycleError):
    """No sync record exists for the requested user."""


class NotionSchemaError(SyncCycleError):
    """The user's Notion database is missing a property the sync needs.

    Unlike other cycle failures this will not fix itself; the user has to
    change the database.
    """

    def __init__(self, issues: List[str], email: Optional[str] = None):
        self.issues = issues
        super().__init__(f"Notion schema: {'; '.join(issues)}", email=email)


class NotificationError(Exception):
    """Mailjet did not accept a notification email."""
