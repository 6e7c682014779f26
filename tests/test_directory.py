import pytest

from app.chat.directory import ConversationDirectory
from app.chat.exceptions import ConversationNotFound, MessagingError, NotAParticipant
from app.utils.display_names import PLACEHOLDER_NAMES

from .conftest import ALICE, BOB, CAROL


@pytest.fixture
def directory(fake_db):
    return ConversationDirectory(fake_db)


def test_lists_only_the_users_conversations_newest_first(fake_db, directory):
    older = fake_db.add_conversation([ALICE, BOB])
    newer = fake_db.add_conversation([CAROL, ALICE])
    unrelated = fake_db.add_conversation([BOB, CAROL])
    fake_db.add_message(older["id"], BOB, "first")
    fake_db.add_message(newer["id"], CAROL, "second")
    fake_db.add_message(unrelated["id"], BOB, "not for alice")

    conversations = directory.list_conversations(ALICE)

    assert [conversation["id"] for conversation in conversations] == [newer["id"], older["id"]]


def test_enriches_other_participant_and_unread_count(fake_db, directory):
    conversation = fake_db.add_conversation([ALICE, BOB], participant_names=["Farmer", "Farmer"])
    fake_db.add_message(conversation["id"], BOB, "hello", sender_name="Bob Otieno")
    fake_db.add_message(conversation["id"], BOB, "you there?", sender_name="Bob Otieno")
    fake_db.add_message(conversation["id"], ALICE, "yes", sender_name="Alice Wanjiru")

    [row] = directory.list_conversations(ALICE)

    assert row["participant_names"] == ["Alice Wanjiru", "Bob Otieno"]
    assert row["other_participant_id"] == BOB
    assert row["other_participant_name"] == "Bob Otieno"
    assert row["unread_count"] == 2


def test_names_stay_parallel_and_avoid_placeholders(fake_db, directory):
    fake_db.auth_emails[CAROL] = "carol@farm.test"
    fake_db.add_conversation([ALICE, CAROL], participant_names=["Anonymous", "Unknown"])
    fake_db.add_conversation([BOB, ALICE])

    for row in directory.list_conversations(ALICE):
        assert len(row["participant_names"]) == len(row["participant_ids"])
        assert row["other_participant_name"] not in PLACEHOLDER_NAMES


def test_no_user_means_no_conversations(fake_db, directory):
    fake_db.add_conversation([ALICE, BOB])

    assert directory.list_conversations(None) == []
    assert fake_db.calls == []


def test_empty_inbox(directory):
    assert directory.list_conversations(CAROL) == []


def test_backend_failure_surfaces(fake_db, directory):
    fake_db.add_conversation([ALICE, BOB])
    fake_db.fail("conversations", "select")

    with pytest.raises(MessagingError):
        directory.list_conversations(ALICE)


def test_get_conversation_checks_participation(fake_db, directory):
    conversation = fake_db.add_conversation([ALICE, BOB])

    assert directory.get_conversation(BOB, conversation["id"])["other_participant_id"] == ALICE

    with pytest.raises(NotAParticipant):
        directory.get_conversation(CAROL, conversation["id"])

    with pytest.raises(ConversationNotFound):
        directory.get_conversation(ALICE, "missing")


def test_delete_removes_conversation_and_its_messages(fake_db, directory):
    conversation = fake_db.add_conversation([ALICE, BOB])
    kept = fake_db.add_conversation([ALICE, CAROL])
    fake_db.add_message(conversation["id"], ALICE, "bye")
    fake_db.add_message(kept["id"], CAROL, "stay")

    participants = directory.delete_conversation(ALICE, conversation["id"])

    assert participants == [ALICE, BOB]
    assert fake_db.rows("conversations", id=conversation["id"]) == []
    assert fake_db.rows("messages", conversation_id=conversation["id"]) == []
    assert len(fake_db.rows("messages", conversation_id=kept["id"])) == 1
    assert [row["id"] for row in directory.list_conversations(BOB)] == []


def test_only_participants_can_delete(fake_db, directory):
    conversation = fake_db.add_conversation([ALICE, BOB])

    with pytest.raises(NotAParticipant):
        directory.delete_conversation(CAROL, conversation["id"])

    assert len(fake_db.rows("conversations")) == 1


def test_placeholder_profile_name_never_hides_a_real_email(fake_db, directory):
    fake_db.add_profile(CAROL, full_name="Farmer", email="carol.n@farm.test")
    fake_db.add_conversation([ALICE, CAROL])

    (conversation,) = directory.list_conversations(ALICE)

    assert conversation["other_participant_name"] == "carol.n"


def test_delete_is_a_single_conversation_request(fake_db, directory):
    conversation = fake_db.add_conversation([ALICE, BOB])
    fake_db.add_message(conversation["id"], BOB, "hello")

    directory.delete_conversation(BOB, conversation["id"])

    deletes = [call for call in fake_db.calls if call[1] == "delete"]
    assert deletes == [("conversations", "delete")]
    assert fake_db.rows("messages") == []


def test_failed_delete_keeps_the_messages(fake_db, directory):
    conversation = fake_db.add_conversation([ALICE, BOB])
    fake_db.add_message(conversation["id"], BOB, "hello")
    fake_db.fail("conversations", "delete")

    with pytest.raises(MessagingError):
        directory.delete_conversation(ALICE, conversation["id"])

    assert len(fake_db.rows("messages", conversation_id=conversation["id"])) == 1
