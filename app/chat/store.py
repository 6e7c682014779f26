import logging
from datetime import datetime, timezone

from postgrest.exceptions import APIError
from supabase import Client

from app.utils.display_names import resolve_sender_name
from .exceptions import MessagingError


logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessageStore:
    """
    Reads a conversation's history and appends to it.

    Find-or-create looks a conversation up before inserting one. Nothing
    in the database makes the pair unique, so two first messages sent at the
    same moment between the same users can still create two conversations.
    """

    def __init__(self, client: Client):
        self.client = client

    def get_messages(self, conversation_id: str | None) -> list[dict]:
        """Full history of a conversation, oldest first."""
        if not conversation_id:
            return []

        try:
            messages = (
                self.client.table("messages")
                .select("*")
                .eq("conversation_id", conversation_id)
                .order("created_at", desc=False)
                .execute()
            )
        except APIError as e:
            logger.error(
                f"get_messages_failed conversation_id={conversation_id} error={e}"
            )
            raise MessagingError("Failed to retrieve messages.") from e

        return messages.data or []

    def find_conversation(self, user_id: str, other_id: str) -> dict | None:
        existing = (
            self.client.table("conversations")
            .select("*")
            .contains("participant_ids", [user_id, other_id])
            .limit(1)
            .execute()
        )
        return existing.data[0] if existing.data else None

    def _create_conversation(self, row: dict) -> dict:
        created = self.client.table("conversations").insert(row).execute()
        conversation = created.data[0]
        logger.info(
            f"conversation_created conversation_id={conversation['id']} "
            f"participant_ids={conversation['participant_ids']}"
        )
        return conversation

    def _append(self, conversation_id: str, sender_id: str, sender_name: str, content: str) -> dict:
        inserted = (
            self.client.table("messages")
            .insert(
                {
                    "conversation_id": conversation_id,
                    "sender_id": sender_id,
                    "sender_name": sender_name,
                    "content": content,
                    "read": False,
                }
            )
            .execute()
        )

        (
            self.client.table("conversations")
            .update({"last_message": content, "last_message_at": utc_now()})
            .eq("id", conversation_id)
            .execute()
        )

        return inserted.data[0]

    def send(
        self,
        sender_id: str,
        content: str,
        conversation_id: str | None = None,
        recipient_id: str | None = None,
    ) -> dict:
        """
        Append a message, finding or creating the conversation when only a
        recipient is given.

        Returns `{"message": ..., "conversation_id": ...}`.
        """
        try:
            sender_name = resolve_sender_name(self.client, sender_id)

            if not conversation_id and recipient_id:
                existing = self.find_conversation(sender_id, recipient_id)

                if existing:
                    conversation_id = existing["id"]
                else:
                    conversation_id = self._create_conversation(
                        {
                            "participant_ids": [sender_id, recipient_id],
                            "last_message": content,
                            "last_message_at": utc_now(),
                        }
                    )["id"]

            if not conversation_id:
                raise MessagingError("No conversation ID")

            message = self._append(conversation_id, sender_id, sender_name, content)

        except APIError as e:
            logger.error(f"send_message_failed sender_id={sender_id} error={e}")
            raise MessagingError("Failed to send message.") from e

        logger.info(
            f"message_sent conversation_id={conversation_id} sender_id={sender_id}"
        )
        return {"message": message, "conversation_id": conversation_id}

    def start_conversation(
        self,
        sender_id: str,
        recipient_id: str,
        recipient_name: str,
        initial_message: str | None = None,
    ) -> dict:
        """
        Open a conversation with `recipient_id`, optionally sending a first
        message. `recipient_name` is whatever the caller already knows the
        recipient as (e.g. the author name on a forum post).

        An existing conversation is returned as is, with names ordered to
        match its stored participant ids.
        """
        try:
            sender_name = resolve_sender_name(self.client, sender_id)
            existing = self.find_conversation(sender_id, recipient_id)

            if existing:
                names = {sender_id: sender_name, recipient_id: recipient_name}
                return {
                    **existing,
                    "participant_names": [
                        names.get(participant_id, "Unknown")
                        for participant_id in existing["participant_ids"]
                    ],
                }

            conversation = self._create_conversation(
                {
                    "participant_ids": [sender_id, recipient_id],
                    "participant_names": [sender_name, recipient_name],
                    "last_message": initial_message or "",
                    "last_message_at": utc_now(),
                }
            )

            if initial_message:
                self._append(conversation["id"], sender_id, sender_name, initial_message)
                conversation["last_message"] = initial_message

        except APIError as e:
            logger.error(
                f"start_conversation_failed sender_id={sender_id} "
                f"recipient_id={recipient_id} error={e}"
            )
            raise MessagingError("Failed to start conversation.") from e

        return conversation
