"""
Display name resolution for conversation participants and message senders.

Several sources can disagree about what a user is called: the name stamped on
the messages they sent, their `user_profiles` row, their auth email and the
names cached on a conversation row. Older rows also carry placeholder values
("Farmer", "Anonymous", "Unknown") that must never win over a real name.
"""
import logging
from typing import Iterable, Optional

from supabase import Client


logger = logging.getLogger(__name__)

FALLBACK_NAME = "Farmer"
PLACEHOLDER_NAMES = frozenset({"Farmer", "Anonymous", "Unknown"})


def is_placeholder(name: Optional[str]) -> bool:
    return not name or name in PLACEHOLDER_NAMES


def email_to_name(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    local_part = email.split("@")[0]
    return local_part or None


def profile_display_name(profile: dict) -> Optional[str]:
    full_name = profile.get("full_name")
    if not is_placeholder(full_name):
        return full_name
    return email_to_name(profile.get("email"))


def _remember(name_map: dict, user_id: str, name: Optional[str]) -> None:
    if not is_placeholder(name):
        name_map[user_id] = name


def names_from_profiles(client: Client, user_ids: Iterable[str]) -> dict:
    user_ids = list(user_ids)
    if not user_ids:
        return {}

    profiles = (
        client.table("user_profiles")
        .select("id, full_name, email")
        .in_("id", user_ids)
        .execute()
    )

    names = {}
    for profile in profiles.data or []:
        _remember(names, profile["id"], profile_display_name(profile))
    return names


def names_from_auth_emails(client: Client, user_ids: Iterable[str]) -> dict:
    """Email-derived names straight from auth.users via the get_user_emails RPC."""
    user_ids = list(user_ids)
    if not user_ids:
        return {}

    auth_emails = client.rpc("get_user_emails", {"user_ids": user_ids}).execute()

    names = {}
    for row in auth_emails.data or []:
        _remember(names, row["id"], email_to_name(row.get("email")))
    return names


def resolve_sender_name(client: Client, user_id: str) -> str:
    """Name stamped on a message when `user_id` sends it."""
    name = names_from_profiles(client, [user_id]).get(user_id)

    if not name:
        name = names_from_auth_emails(client, [user_id]).get(user_id)

    return name or FALLBACK_NAME


def build_name_map(client: Client, conversations: list[dict]) -> dict:
    """
    Resolve a display name for every participant of `conversations`.

    Priority, highest first:
      1. latest real `sender_name` on any message in these conversations
      2. profile full name, else the profile email's local part
      3. auth email local part (get_user_emails RPC)
      4. real name cached on the conversation row itself

    Ids that resolve to nothing are left out of the map.
    """
    name_map: dict = {}
    if not conversations:
        return name_map

    all_ids = []
    for conversation in conversations:
        for user_id in conversation.get("participant_ids") or []:
            if user_id not in all_ids:
                all_ids.append(user_id)

    # 1. Sender names, oldest first so the most recent one wins
    conversation_ids = [conversation["id"] for conversation in conversations]
    messages = (
        client.table("messages")
        .select("sender_id, sender_name, created_at")
        .in_("conversation_id", conversation_ids)
        .order("created_at", desc=False)
        .execute()
    )
    for message in messages.data or []:
        _remember(name_map, message["sender_id"], message.get("sender_name"))

    # 2. Profiles
    missing = [user_id for user_id in all_ids if user_id not in name_map]
    name_map.update(names_from_profiles(client, missing))

    # 3. auth.users emails
    missing = [user_id for user_id in all_ids if user_id not in name_map]
    name_map.update(names_from_auth_emails(client, missing))

    # 4. Names cached on the conversation rows
    for conversation in conversations:
        cached_names = conversation.get("participant_names") or []
        for index, user_id in enumerate(conversation.get("participant_ids") or []):
            if user_id in name_map or index >= len(cached_names):
                continue
            _remember(name_map, user_id, cached_names[index])

    unresolved = [user_id for user_id in all_ids if user_id not in name_map]
    if unresolved:
        logger.debug(f"display_names_unresolved ids={unresolved}")

    return name_map


def resolve_participant_names(conversation: dict, name_map: dict) -> list[str]:
    """Fresh names for `conversation`'s participants, in participant order."""
    cached_names = conversation.get("participant_names") or []
    names = []

    for index, user_id in enumerate(conversation.get("participant_ids") or []):
        name = name_map.get(user_id)

        if not name and index < len(cached_names):
            cached = cached_names[index]
            name = None if is_placeholder(cached) else cached

        names.append(name or FALLBACK_NAME)

    return names
