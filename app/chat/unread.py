import logging

from postgrest.exceptions import APIError
from supabase import Client

from .exceptions import MessagingError


logger = logging.getLogger(__name__)


class UnreadTracker:
    """
    Counts messages sent *to* a user that they have not opened yet.

    A user's own messages never count towards their unread total, whatever
    their read flag says.
    """

    def __init__(self, client: Client):
        self.client = client

    def _conversation_ids(self, user_id: str) -> list[str]:
        conversations = (
            self.client.table("conversations")
            .select("id")
            .contains("participant_ids", [user_id])
            .execute()
        )
        return [row["id"] for row in conversations.data or []]

    def get_unread_count(self, user_id: str | None) -> int:
        if not user_id:
            return 0

        try:
            conversation_ids = self._conversation_ids(user_id)
            if not conversation_ids:
                return 0

            unread = (
                self.client.table("messages")
                .select("id", count="exact", head=True)
                .in_("conversation_id", conversation_ids)
                .eq("read", False)
                .neq("sender_id", user_id)
                .execute()
            )
        except APIError as e:
            logger.error(f"unread_count_failed user_id={user_id} error={e}")
            raise MessagingError("Failed to count unread messages.") from e

        return unread.count or 0

    def count_for_conversation(self, user_id: str, conversation_id: str) -> int:
        try:
            unread = (
                self.client.table("messages")
                .select("id", count="exact", head=True)
                .eq("conversation_id", conversation_id)
                .eq("read", False)
                .neq("sender_id", user_id)
                .execute()
            )
        except APIError as e:
            logger.error(
                f"unread_count_failed conversation_id={conversation_id} error={e}"
            )
            raise MessagingError("Failed to count unread messages.") from e

        return unread.count or 0

    def counts_by_conversation(self, user_id: str, conversation_ids: list[str]) -> dict:
        """Unread counts for several conversations in a single query."""
        counts = {conversation_id: 0 for conversation_id in conversation_ids}
        if not conversation_ids:
            return counts

        try:
            unread = (
                self.client.table("messages")
                .select("conversation_id")
                .in_("conversation_id", conversation_ids)
                .eq("read", False)
                .neq("sender_id", user_id)
                .execute()
            )
        except APIError as e:
            raise MessagingError("Failed to count unread messages.") from e

        for row in unread.data or []:
            counts[row["conversation_id"]] = counts.get(row["conversation_id"], 0) + 1
        return counts

    def mark_as_read(self, user_id: str, conversation_id: str) -> int:
        """
        Flag every message in the conversation not sent by `user_id` as read.

        Safe to call repeatedly; returns the number of rows the backend
        reported as updated.
        """
        try:
            updated = (
                self.client.table("messages")
                .update({"read": True})
                .eq("conversation_id", conversation_id)
                .neq("sender_id", user_id)
                .eq("read", False)
                .execute()
            )
        except APIError as e:
            logger.error(
                f"mark_as_read_failed conversation_id={conversation_id} error={e}"
            )
            raise MessagingError("Failed to mark messages as read.") from e

        marked = len(updated.data or [])
        if marked:
            logger.info(
                f"messages_marked_read conversation_id={conversation_id} "
                f"user_id={user_id} count={marked}"
            )
        return marked
