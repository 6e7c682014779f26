import logging

from postgrest.exceptions import APIError
from supabase import Client

from app.utils.display_names import build_name_map, resolve_participant_names
from .exceptions import ConversationNotFound, MessagingError, NotAParticipant
from .unread import UnreadTracker


logger = logging.getLogger(__name__)


def other_participant(conversation: dict, user_id: str) -> tuple:
    """(id, name) of the participant in `conversation` who is not `user_id`."""
    ids = conversation.get("participant_ids") or []
    names = conversation.get("participant_names") or []

    for index, participant_id in enumerate(ids):
        if participant_id != user_id:
            name = names[index] if index < len(names) else None
            return participant_id, name

    return None, None


class ConversationDirectory:
    """
    The list of conversations a user takes part in, each enriched with fresh
    participant names and the viewer's unread count.
    """

    def __init__(self, client: Client):
        self.client = client
        self.unread = UnreadTracker(client)

    def _enrich(self, conversations: list[dict], user_id: str) -> list[dict]:
        name_map = build_name_map(self.client, conversations)
        unread_counts = self.unread.counts_by_conversation(
            user_id, [conversation["id"] for conversation in conversations]
        )

        enriched = []
        for conversation in conversations:
            row = {
                **dict(conversation),
                "participant_names": resolve_participant_names(conversation, name_map),
            }
            other_id, other_name = other_participant(row, user_id)
            row["other_participant_id"] = other_id
            row["other_participant_name"] = other_name
            row["unread_count"] = unread_counts.get(conversation["id"], 0)
            enriched.append(row)

        return enriched

    def list_conversations(self, user_id: str | None) -> list[dict]:
        """Conversations containing `user_id`, most recent activity first."""
        if not user_id:
            return []

        try:
            conversations = (
                self.client.table("conversations")
                .select("*")
                .contains("participant_ids", [user_id])
                .order("last_message_at", desc=True)
                .execute()
            )

            if not conversations.data:
                return []

            return self._enrich(conversations.data, user_id)

        except APIError as e:
            logger.error(f"list_conversations_failed user_id={user_id} error={e}")
            raise MessagingError("Failed to fetch conversations.") from e

    def _fetch(self, conversation_id: str) -> dict:
        try:
            result = (
                self.client.table("conversations")
                .select("*")
                .eq("id", conversation_id)
                .limit(1)
                .execute()
            )
        except APIError as e:
            raise MessagingError("Failed to fetch conversation.") from e

        if not result.data:
            raise ConversationNotFound(conversation_id)

        return result.data[0]

    def get_conversation(self, user_id: str, conversation_id: str) -> dict:
        conversation = self._fetch(conversation_id)

        if user_id not in (conversation.get("participant_ids") or []):
            raise NotAParticipant(conversation_id, user_id)

        try:
            return self._enrich([conversation], user_id)[0]
        except APIError as e:
            raise MessagingError("Failed to fetch conversation.") from e

    def participants(self, conversation_id: str) -> list[str]:
        return list(self._fetch(conversation_id).get("participant_ids") or [])

    def delete_conversation(self, user_id: str, conversation_id: str) -> list[str]:
        """
        Delete a conversation and every message in it.

        Only a participant may delete. Returns the participant ids so callers
        can drop anything they cached for them.
        """
        participant_ids = self.participants(conversation_id)

        if user_id not in participant_ids:
            raise NotAParticipant(conversation_id, user_id)

        try:
            # messages.conversation_id cascades on delete
            (
                self.client.table("conversations")
                .delete()
                .eq("id", conversation_id)
                .execute()
            )
        except APIError as e:
            logger.error(
                f"delete_conversation_failed conversation_id={conversation_id} error={e}"
            )
            raise MessagingError("Failed to delete conversation.") from e

        logger.info(
            f"conversation_deleted conversation_id={conversation_id} user_id={user_id}"
        )
        return participant_ids
