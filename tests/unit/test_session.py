"""Unit tests for the process-wide chat core shared by browser sessions."""

import time

import pytest

from frontend.core.models import Message, MessageStatus
from frontend.core.storage import StateStorage
from frontend.session import ChatApp


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'minichat.sqlite'}"


@pytest.fixture
def chat_app(database_url, scripted_transport):
    app = ChatApp.create(database_url, transport=scripted_transport(scripted_transport.ok()))
    yield app
    app.close()


def wait_until_busy(controller, timeout: float = 1.0):
    deadline = time.monotonic() + timeout
    while not controller.is_busy:
        if time.monotonic() > deadline:
            raise AssertionError("controller never started loading")
        time.sleep(0.005)


class TestSharedStore:

    def test_writes_from_two_sessions_both_persist(self, chat_app, database_url):
        store = chat_app.store
        created = chat_app.runtime.call(store.create_conversation)
        chat_app.runtime.call(store.append_message, Message.user("from the other tab"))

        persisted = StateStorage(database_url).load()

        assert [c.title for c in persisted.conversations] == ["Conversation 2", "Conversation 1"]
        assert persisted.active_conversation_id == created.id
        assert persisted.conversations[0].messages[0].content == "from the other tab"

    def test_restart_restores_conversations(self, database_url, scripted_transport):
        first = ChatApp.create(database_url, transport=scripted_transport(scripted_transport.ok()))
        created = first.runtime.call(first.store.create_conversation)
        first.close()

        second = ChatApp.create(database_url, transport=scripted_transport(scripted_transport.ok()))
        try:
            assert second.store.active_conversation_id == created.id
        finally:
            second.close()


class TestClose:

    def test_close_cancels_in_flight_send(self, database_url, scripted_transport):
        app = ChatApp.create(database_url, transport=scripted_transport(scripted_transport.HANG))
        pending = app.runtime.submit(app.controller.send("Hi"))
        wait_until_busy(app.controller)

        app.close()

        assert pending.result(timeout=1) is None
        assert app.store.active_conversation.messages[0].status is MessageStatus.CANCELLED
        assert app.runtime.loop.is_closed()

    def test_close_is_idempotent(self, chat_app):
        chat_app.close()
        chat_app.close()
        assert chat_app.runtime.loop.is_closed()

    def test_close_releases_owned_transport(self, database_url):
        app = ChatApp.create(database_url, api_url="http://localhost:8000")
        client = app._transport._client

        app.close()

        assert client.is_closed
