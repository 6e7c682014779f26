class MessagingError(Exception):
    """A read or write against the messaging tables failed."""


class ConversationNotFound(MessagingError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found.")
        self.conversation_id = conversation_id


class NotAParticipant(MessagingError):
    def __init__(self, conversation_id: str, user_id: str):
        super().__init__(
            f"User {user_id} is not a participant in conversation {conversation_id}."
        )
        self.conversation_id = conversation_id
        self.user_id = user_id
