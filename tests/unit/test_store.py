"""Unit tests for the conversation store."""

import pytest

from frontend.core.errors import PersistenceError
from frontend.core.models import AppState, Conversation, Message, MessageStatus
from frontend.core.store import MAX_CONVERSATIONS, ConversationStore


class TestInitialize:

    def test_creates_default_conversation(self, store):
        conversations = store.conversations
        assert len(conversations) == 1
        assert conversations[0].title == "Conversation 1"
        assert store.active_conversation_id == conversations[0].id

    def test_default_is_persisted(self, store, storage):
        assert storage.load() == store.state

    def test_restores_saved_state(self, storage):
        conversation = Conversation(title="Conversation 7", messages=[Message.user("hi")])
        storage.save(AppState(conversations=[conversation], active_conversation_id=conversation.id))

        store = ConversationStore(storage)
        store.initialize()

        assert store.active_conversation.title == "Conversation 7"
        assert store.active_conversation.messages[0].content == "hi"

    def test_empty_saved_state_gets_default(self, storage):
        storage.save(AppState())
        store = ConversationStore(storage)
        store.initialize()
        assert [c.title for c in store.conversations] == ["Conversation 1"]

    def test_dangling_active_id_repaired(self, storage):
        first, second = Conversation(title="Conversation 2"), Conversation(title="Conversation 1")
        storage.save(AppState(conversations=[first, second], active_conversation_id="gone"))

        store = ConversationStore(storage)
        store.initialize()

        assert store.active_conversation_id == first.id
        assert storage.load().active_conversation_id == first.id


class TestCreate:

    def test_new_conversation_is_first_and_active(self, store):
        created = store.create_conversation()

        assert created.title == "Conversation 2"
        assert store.conversations[0].id == created.id
        assert store.active_conversation_id == created.id

    def test_title_follows_highest_number(self, store):
        store.create_conversation()
        store.create_conversation()
        store.delete_conversation(store.conversations[1].id)  # drop "Conversation 2"

        assert store.create_conversation().title == "Conversation 4"

    def test_capacity_refuses_without_saving(self, storage, mocker):
        store = ConversationStore(storage, max_conversations=3)
        store.initialize()
        store.create_conversation()
        store.create_conversation()
        before = store.state
        save = mocker.spy(storage, "save")

        assert store.create_conversation() is None
        assert store.state == before
        save.assert_not_called()

    def test_default_capacity(self):
        assert MAX_CONVERSATIONS == 100


class TestDelete:

    def test_delete_inactive_keeps_active(self, store):
        original = store.active_conversation_id
        created = store.create_conversation()
        store.switch_conversation(original)

        assert store.delete_conversation(created.id)
        assert store.active_conversation_id == original
        assert len(store.conversations) == 1

    def test_delete_active_moves_to_first(self, store):
        first = store.create_conversation()
        second = store.create_conversation()

        store.delete_conversation(second.id)

        assert store.active_conversation_id == first.id

    def test_delete_only_conversation_creates_default(self, store):
        only = store.active_conversation_id

        assert store.delete_conversation(only)

        conversations = store.conversations
        assert len(conversations) == 1
        assert conversations[0].id != only
        assert conversations[0].title == "Conversation 1"
        assert store.active_conversation_id == conversations[0].id

    def test_delete_unknown(self, store):
        before = store.state
        assert store.delete_conversation("missing") is False
        assert store.state == before


class TestSwitch:

    def test_switch(self, store):
        original = store.active_conversation_id
        store.create_conversation()

        assert store.switch_conversation(original)
        assert store.active_conversation_id == original

    def test_switch_unknown(self, store):
        active = store.active_conversation_id
        assert store.switch_conversation("missing") is False
        assert store.active_conversation_id == active


class TestMessages:

    def test_append_to_active(self, store):
        msg = Message.user("hello")
        assert store.append_message(msg)
        assert store.active_conversation.messages == [msg]

    def test_append_only_touches_active(self, store):
        other = store.active_conversation_id
        store.create_conversation()
        store.append_message(Message.user("hello"))

        assert store.get_conversation(other).messages == []

    def test_update_status(self, store):
        msg = Message.user("hello")
        store.append_message(msg)

        assert store.update_message_status(msg.id, MessageStatus.SENT)
        assert store.active_conversation.messages[0].status is MessageStatus.SENT

    def test_update_unknown_message(self, store):
        assert store.update_message_status("missing", MessageStatus.SENT) is False

    def test_messages_survive_reload(self, store, storage):
        msg = Message.user("hello")
        store.append_message(msg)
        store.update_message_status(msg.id, MessageStatus.ERROR)

        reloaded = ConversationStore(storage)
        reloaded.initialize()
        assert reloaded.active_conversation.messages[0].status is MessageStatus.ERROR


class TestCopies:

    def test_readers_return_copies(self, store):
        store.active_conversation.messages.append(Message.user("sneaky"))
        store.conversations[0].messages.append(Message.user("sneaky"))

        assert store.active_conversation.messages == []

    def test_appended_message_is_copied(self, store):
        msg = Message.user("hello")
        store.append_message(msg)
        msg.content = "changed"

        assert store.active_conversation.messages[0].content == "hello"


class TestPersistenceFailure:

    def test_failed_save_keeps_memory_state(self, store, storage, mocker):
        mocker.patch.object(storage, "save", side_effect=PersistenceError("Storage quota exceeded"))

        created = store.create_conversation()

        assert created is not None
        assert store.active_conversation_id == created.id
        assert str(store.persistence_error) == "Storage quota exceeded"

    def test_next_successful_save_clears_error(self, store, storage, mocker):
        mocker.patch.object(storage, "save", side_effect=[PersistenceError("boom"), None])

        store.create_conversation()
        assert store.persistence_error is not None
        store.create_conversation()
        assert store.persistence_error is None
