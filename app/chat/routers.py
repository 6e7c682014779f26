import asyncio
import logging

import jwt
from fastapi import APIRouter, HTTPException, Depends, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from supabase import Client

from app.core.supabase_client import get_supabase, get_realtime_client
from app.core.dependencies import (
    decode_token,
    get_current_user_id,
    get_refetch_interval,
)
from app.utils.case import camelize

from .cache import (
    QueryCache,
    get_query_cache,
    conversations_key,
    messages_key,
    unread_count_key,
    keys_for_participants,
)
from .directory import ConversationDirectory
from .exceptions import ConversationNotFound, MessagingError, NotAParticipant
from .realtime import LiveUpdateBridge, LiveView
from .store import MessageStore
from .unread import UnreadTracker
from .schemas import (
    SendMessageModel,
    SendMessageResponseModel,
    StartConversationModel,
    StartConversationResponseModel,
    GetConversationsResponseModel,
    ConversationData,
    DeleteConversationResponseModel,
    GetMessagesResponseModel,
    UnreadCountResponseModel,
    ConversationUnreadCountResponseModel,
    MarkAsReadResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()

POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011


async def get_live_update_bridge(client=Depends(get_realtime_client)) -> LiveUpdateBridge:
    return LiveUpdateBridge(client)


def _require_participant(
    directory: ConversationDirectory, conversation_id: str, user_id: str
) -> list[str]:
    participant_ids = directory.participants(conversation_id)

    if user_id not in participant_ids:
        raise NotAParticipant(conversation_id, user_id)

    return participant_ids


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
def get_conversations(
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Retrieve all conversations for the authenticated user.

    Conversations are ordered by their last message, newest first. Every
    participant name is resolved fresh on each fetch (latest name used on a
    message, then profile, then auth email, then the name stored on the
    conversation, then "Farmer").

    **Returns**
    - `conversations`: List of conversation objects
        - `id`, `participantIds`, `participantNames`
        - `otherParticipantId`, `otherParticipantName`
        - `lastMessage`, `lastMessageAt`
        - `unreadCount`: unread messages sent to you in this conversation

    **Errors**
    - 401: Invalid or expired JWT
    - 500: Database or unexpected server error
    """
    directory = ConversationDirectory(client)

    try:
        conversations = cache.get(
            conversations_key(user_id),
            lambda: directory.list_conversations(user_id),
        )
        return {"conversations": conversations}

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to fetch conversations.")

    except Exception:
        logger.exception(f"get_conversations_failed user_id={user_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversations.")


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationData,
    status_code=200,
)
def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
):
    """
    Retrieve a single conversation with resolved participant names.

    **Errors**
    - 403: You are not a participant
    - 404: Conversation not found
    - 500: Database error
    """
    try:
        return ConversationDirectory(client).get_conversation(user_id, conversation_id)

    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found.")

    except NotAParticipant:
        raise HTTPException(
            status_code=403, detail="You are not a member of this conversation."
        )

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to fetch conversation.")


@router.post(
    "/conversations/start",
    response_model=StartConversationResponseModel,
    status_code=200,
)
def start_conversation(
    data: StartConversationModel,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Get or create a conversation with another farmer.

    Used when a chat is opened from outside the inbox (e.g. "Message" on a
    forum post), where the recipient's name is already known.

    **Input**
    - `recipientId`: UUID of the farmer to message
    - `recipientName`: Name to store for the recipient on a new conversation
    - `initialMessage` (optional): First message to send

    **Returns**
    - The existing or newly created conversation

    **Errors**
    - 400: Attempt to message yourself
    - 401: Unauthorized
    - 500: Database error
    """
    recipient_id = str(data.recipient_id)

    if recipient_id == user_id:
        raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself.")

    try:
        conversation = MessageStore(client).start_conversation(
            user_id,
            recipient_id,
            data.recipient_name,
            initial_message=data.initial_message,
        )
    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to start conversation.")

    cache.invalidate(
        messages_key(conversation["id"]),
        *keys_for_participants(conversation["participant_ids"]),
    )
    return conversation


@router.delete(
    "/conversations/{conversation_id}",
    response_model=DeleteConversationResponseModel,
    status_code=200,
)
def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Delete a conversation and all of its messages.

    The conversation disappears from both participants' inboxes.

    **Errors**
    - 403: You are not a participant
    - 404: Conversation not found
    - 500: Database error
    """
    try:
        participant_ids = ConversationDirectory(client).delete_conversation(
            user_id, conversation_id
        )

    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found.")

    except NotAParticipant:
        raise HTTPException(
            status_code=403, detail="You are not a member of this conversation."
        )

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to delete conversation.")

    cache.invalidate(messages_key(conversation_id), *keys_for_participants(participant_ids))
    return {"conversation_deleted": True}


@router.get(
    "/messages/{conversation_id}",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
def get_messages(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Retrieve all messages for a conversation.

    Returns the full message history, ordered from oldest to newest. The
    authenticated user must be a participant.

    **Path Parameters**
    - `conversation_id`: UUID of the conversation

    **Returns**
    - `messages`: `id`, `conversationId`, `senderId`, `senderName`,
      `content`, `read`, `createdAt`

    **Errors**
    - 403: User is not a participant
    - 404: Conversation does not exist
    - 500: Database or unexpected server error
    """
    store = MessageStore(client)

    try:
        _require_participant(ConversationDirectory(client), conversation_id, user_id)

        messages = cache.get(
            messages_key(conversation_id),
            lambda: store.get_messages(conversation_id),
        )
        return {"messages": messages}

    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found.")

    except NotAParticipant:
        raise HTTPException(
            status_code=403, detail="You are not a member of this conversation."
        )

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to retrieve messages.")


@router.post(
    "/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_message(
    data: SendMessageModel,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Send a message.

    Either post to an existing conversation with `conversationId`, or give a
    `recipientId` and the conversation between you two is found or created.
    Failed sends are not retried; the client has to send again.

    **Input**
    - `conversationId` or `recipientId`
    - `content`: Message text (trimmed, must not be empty)

    **Returns**
    - `message`: The newly created message
    - `conversationId`: The conversation it was appended to

    **Errors**
    - 400: Attempt to message yourself
    - 403: User is not a participant of `conversationId`
    - 404: Conversation not found
    - 422: Empty content, or neither target given
    - 500: Database error
    """
    directory = ConversationDirectory(client)
    conversation_id = str(data.conversation_id) if data.conversation_id else None
    recipient_id = str(data.recipient_id) if data.recipient_id else None

    if not conversation_id and recipient_id == user_id:
        raise HTTPException(status_code=400, detail="Cannot send a message to yourself.")

    try:
        if conversation_id:
            participant_ids = _require_participant(directory, conversation_id, user_id)
        else:
            participant_ids = [user_id, recipient_id]

        result = MessageStore(client).send(
            user_id,
            data.content,
            conversation_id=conversation_id,
            recipient_id=recipient_id,
        )

    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found.")

    except NotAParticipant:
        raise HTTPException(
            status_code=403, detail="You are not a participant in this conversation."
        )

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to send message.")

    cache.invalidate(
        messages_key(result["conversation_id"]),
        *keys_for_participants(participant_ids),
    )
    return result


@router.get(
    "/unread-count",
    response_model=UnreadCountResponseModel,
    status_code=200,
)
def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Total number of unread messages sent to the authenticated user across
    all of their conversations. Your own messages never count.
    """
    tracker = UnreadTracker(client)

    try:
        count = cache.get(
            unread_count_key(user_id), lambda: tracker.get_unread_count(user_id)
        )
        return {"unread_count": count}

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to count unread messages.")


@router.get(
    "/conversations/{conversation_id}/unread-count",
    response_model=ConversationUnreadCountResponseModel,
    status_code=200,
)
def get_conversation_unread_count(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
):
    """
    Number of unread messages sent to you in one conversation.

    **Errors**
    - 403: You are not a participant
    - 404: Conversation not found
    - 500: Database error
    """
    try:
        _require_participant(ConversationDirectory(client), conversation_id, user_id)
        count = UnreadTracker(client).count_for_conversation(user_id, conversation_id)

    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found.")

    except NotAParticipant:
        raise HTTPException(
            status_code=403, detail="You are not a member of this conversation."
        )

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to count unread messages.")

    return {"conversation_id": conversation_id, "unread_count": count}


@router.post(
    "/conversations/{conversation_id}/read",
    response_model=MarkAsReadResponseModel,
    status_code=200,
)
def mark_conversation_as_read(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Mark every message in a conversation that was sent to you as read.

    Called when the conversation is opened. Calling it again is harmless.

    **Returns**
    - `markedRead`: Messages flipped to read by this call
    - `unreadCount`: Your total unread count afterwards

    **Errors**
    - 403: You are not a participant
    - 404: Conversation not found
    - 500: Database error
    """
    tracker = UnreadTracker(client)

    try:
        _require_participant(ConversationDirectory(client), conversation_id, user_id)

        marked = tracker.mark_as_read(user_id, conversation_id)

        cache.invalidate(
            messages_key(conversation_id),
            conversations_key(user_id),
            unread_count_key(user_id),
        )
        count = cache.refresh(
            unread_count_key(user_id), lambda: tracker.get_unread_count(user_id)
        )

    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found.")

    except NotAParticipant:
        raise HTTPException(
            status_code=403, detail="You are not a member of this conversation."
        )

    except MessagingError:
        raise HTTPException(status_code=500, detail="Failed to mark messages as read.")

    return {"marked_read": marked, "unread_count": count}


# Live views


def _authenticate_socket(token: str | None) -> str | None:
    if not token:
        return None

    try:
        payload = decode_token(token)
    except jwt.InvalidTokenError as e:
        logger.warning(f"websocket_auth_failed error={e}")
        return None

    return payload.get("sub")


async def _receive_until_disconnect(websocket: WebSocket, view: LiveView) -> None:
    try:
        while True:
            if await websocket.receive_text() == "refresh":
                view.notify()
    except WebSocketDisconnect:
        return


async def _serve_live_view(
    websocket: WebSocket, view: LiveView, subscribe, bridge: LiveUpdateBridge
) -> None:
    """
    Keep a view's subscription alive for as long as its socket is open, then
    tear it down.
    """
    view.bind()
    channel = await subscribe(view.notify)

    runner = asyncio.create_task(view.run())
    receiver = asyncio.create_task(_receive_until_disconnect(websocket, view))

    try:
        done, _ = await asyncio.wait(
            {runner, receiver}, return_when=asyncio.FIRST_COMPLETED
        )

        if runner in done:
            error = runner.exception()
            if isinstance(error, MessagingError):
                logger.error(f"live_view_failed view={view.name} error={error}")
                await websocket.close(code=INTERNAL_ERROR)
            elif error is not None and not isinstance(error, WebSocketDisconnect):
                raise error

    finally:
        runner.cancel()
        receiver.cancel()
        await bridge.unsubscribe(channel)
        logger.info(f"live_view_closed view={view.name}")


@router.websocket("/ws/conversations")
async def conversation_list_view(
    websocket: WebSocket,
    token: str | None = None,
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
    bridge: LiveUpdateBridge = Depends(get_live_update_bridge),
    refetch_interval: float = Depends(get_refetch_interval),
):
    """
    Live inbox: pushes `{"type": "conversations", "conversations": [...],
    "unreadCount": n}` on connect, on every change to `messages` or
    `conversations`, and every refetch interval. Send "refresh" to force one.
    """
    user_id = _authenticate_socket(token)
    if not user_id:
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()

    directory = ConversationDirectory(client)
    tracker = UnreadTracker(client)

    async def refresh(reason: str) -> None:
        cache.invalidate(conversations_key(user_id), unread_count_key(user_id))

        conversations = await run_in_threadpool(
            cache.refresh,
            conversations_key(user_id),
            lambda: directory.list_conversations(user_id),
        )
        unread_count = await run_in_threadpool(
            cache.refresh,
            unread_count_key(user_id),
            lambda: tracker.get_unread_count(user_id),
        )

        await websocket.send_json(
            camelize(
                {
                    "type": "conversations",
                    "reason": reason,
                    "conversations": conversations,
                    "unread_count": unread_count,
                }
            )
        )

    view = LiveView(f"conversations:{user_id}", refresh, refetch_interval)
    await _serve_live_view(
        websocket,
        view,
        lambda on_change: bridge.subscribe_conversation_list(user_id, on_change),
        bridge,
    )


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_view(
    websocket: WebSocket,
    conversation_id: str,
    token: str | None = None,
    client: Client = Depends(get_supabase),
    cache: QueryCache = Depends(get_query_cache),
    bridge: LiveUpdateBridge = Depends(get_live_update_bridge),
    refetch_interval: float = Depends(get_refetch_interval),
):
    """
    Live conversation: pushes `{"type": "messages", "conversationId": ...,
    "messages": [...]}` on connect, on every new message and every refetch
    interval.

    Whenever the message list changes while the view is open, messages sent
    to the viewer are marked as read before the snapshot goes out.
    """
    user_id = _authenticate_socket(token)
    if not user_id:
        await websocket.close(code=POLICY_VIOLATION)
        return

    directory = ConversationDirectory(client)
    store = MessageStore(client)
    tracker = UnreadTracker(client)

    try:
        await run_in_threadpool(_require_participant, directory, conversation_id, user_id)
    except MessagingError as e:
        logger.warning(f"conversation_view_rejected user_id={user_id} error={e}")
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()

    seen_message_ids: list = []

    def fetch_messages() -> list:
        return cache.refresh(
            messages_key(conversation_id), lambda: store.get_messages(conversation_id)
        )

    async def refresh(reason: str) -> None:
        messages = await run_in_threadpool(fetch_messages)

        message_ids = [message["id"] for message in messages]
        if message_ids != seen_message_ids:
            seen_message_ids[:] = message_ids

            marked = await run_in_threadpool(
                tracker.mark_as_read, user_id, conversation_id
            )
            if marked:
                messages = await run_in_threadpool(fetch_messages)

            cache.invalidate(conversations_key(user_id), unread_count_key(user_id))

        await websocket.send_json(
            camelize(
                {
                    "type": "messages",
                    "reason": reason,
                    "conversation_id": conversation_id,
                    "messages": messages,
                }
            )
        )

    view = LiveView(f"messages:{conversation_id}", refresh, refetch_interval)
    await _serve_live_view(
        websocket,
        view,
        lambda on_change: bridge.subscribe_conversation(conversation_id, on_change),
        bridge,
    )
