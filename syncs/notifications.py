"""
Email users whose sync keeps failing.

A user is emailed once per failure streak: after `notify_after_failures`
consecutive failures, while `sent_email` is still unset. The flag is set
before sending so a slow or failing Mailjet call can't cause repeats.
"""

import logging
from typing import List

from lib.config import SyncConfig
from lib.errors import NotificationError
from lib.mailjet_client import MailjetClient
from lib.user_store import UserStore

logger = logging.getLogger("Notifications")

FAILED_SYNC_CAMPAIGN = "Issues with sync"


def get_emails_for_failed_sync_notify(store: UserStore, config: SyncConfig) -> List[str]:
    return [
        record.email
        for record in store.list_synced_users()
        if record.sync_error is not None
        and record.sync_error.num >= config.notify_after_failures
        and not record.sync_error.sent_email
    ]


async def send_failed_sync_notify(store: UserStore, mailer: MailjetClient, config: SyncConfig) -> List[str]:
    """Send the failed-sync email to every user that needs it. Returns the notified emails."""
    emails = get_emails_for_failed_sync_notify(store, config)
    if not emails:
        logger.info("No users to notify about failed syncs")
        return []

    if config.mailjet_failed_sync_template_id is None:
        raise NotificationError("MAILJET_FAILED_SYNC_TEMPLATE_ID is not set.")

    store.mark_failure_notified(emails)
    await mailer.send_template(emails, config.mailjet_failed_sync_template_id, FAILED_SYNC_CAMPAIGN)
    logger.info(f"Failed-sync email sent to {len(emails)} users")
    return emails
