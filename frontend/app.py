"""MiniChat - Streamlit Chat Interface.

Thin rendering layer over the chat session core. This file handles:
  - Attaching each browser session to the process-wide store and controller
  - Sidebar conversation list (new / switch / delete)
  - Rendering messages with their delivery status
  - Sending through the controller and offering Cancel while a reply is pending
"""

import atexit
import os
import time

import streamlit as st
from dotenv import load_dotenv

from frontend.core.controller import (
    MAX_MESSAGE_LENGTH,
    ChatSessionController,
    validate_message,
)
from frontend.core.errors import InvalidRequestError, RequestInFlightError
from frontend.core.models import Message, MessageStatus, RequestStatus
from frontend.core.store import ConversationStore
from frontend.runtime import EventLoopThread
from frontend.session import ChatApp

load_dotenv()

# Config
API_URL = os.environ.get("API_URL", "http://localhost:8000")
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///data/minichat.sqlite")
POLL_INTERVAL_S = 0.1

# Page setup
st.set_page_config(
    page_title="MiniChat",
    layout="centered",
)

# Custom styles
st.markdown("""
<style>
    .stApp {
        max-width: 900px;
        margin: 0 auto;
    }
    .stChatMessage {
        padding: 0.75rem 1rem;
    }
    .status-badge {
        display: inline-block;
        padding: 2px 8px;
        border-radius: 12px;
        font-size: 0.75rem;
        font-weight: 600;
    }
    .status-sending { background: #e2e3e5; color: #383d41; }
    .status-err { background: #f8d7da; color: #721c24; }
    .status-cancelled { background: #fff3cd; color: #856404; }
</style>
""", unsafe_allow_html=True)

_STATUS_BADGES = {
    MessageStatus.SENDING: '<span class="status-badge status-sending">Sending...</span>',
    MessageStatus.ERROR: '<span class="status-badge status-err">Not delivered</span>',
    MessageStatus.CANCELLED: '<span class="status-badge status-cancelled">Cancelled</span>',
}


@st.cache_resource
def get_chat_app() -> ChatApp:
    """One store, controller and event loop shared by every browser session."""
    chat_app = ChatApp.create(DATABASE_URL, API_URL)
    # Streamlit has no per-session teardown hook; abandon in-flight work at process exit
    atexit.register(chat_app.close)
    return chat_app


def get_runtime() -> EventLoopThread:
    return get_chat_app().runtime


def init_session():
    """Attach this browser session to the shared chat core."""
    if "controller" in st.session_state:
        return

    chat_app = get_chat_app()
    st.session_state.store = chat_app.store
    st.session_state.controller = chat_app.controller
    st.session_state.pending = None


def render_message(msg: Message):
    """Render a single chat message with its delivery status."""
    with st.chat_message(msg.role.value):
        st.markdown(msg.content)
        badge = _STATUS_BADGES.get(msg.status)
        if badge:
            st.markdown(badge, unsafe_allow_html=True)


def render_request_banner(controller: ChatSessionController):
    """Show the transient outcome of the last request until it reverts to idle."""
    state = controller.request_state
    if state.status is RequestStatus.CANCELLED:
        st.info(f"[INFO] {state.error}")
    elif state.status in (RequestStatus.ERROR, RequestStatus.TIMEOUT):
        st.error(f"[ERROR] {state.error}")


def wait_for_reply(controller: ChatSessionController):
    """Poll the pending send; any widget click interrupts this and reruns."""
    future = st.session_state.pending
    if future is None:
        return

    st.button("Cancel", on_click=controller.cancel, use_container_width=True)
    with st.status("Waiting for reply...", expanded=False) as status:
        while not future.done():
            retries = controller.request_state.retry_count
            label = "Waiting for reply..." if retries == 0 else f"Retrying (attempt {retries + 1})..."
            status.update(label=label)
            time.sleep(POLL_INTERVAL_S)

    st.session_state.pending = None
    try:
        future.result()
    except (InvalidRequestError, RequestInFlightError) as e:
        st.warning(f"[WARN] {e}")
        return
    st.rerun()


def send_message(user_input: str, controller: ChatSessionController):
    """Validate locally, then hand the send to the background loop."""
    try:
        validate_message(user_input)
    except InvalidRequestError as e:
        st.warning(f"[WARN] {e}")
        return

    st.session_state.pending = get_runtime().submit(controller.send(user_input))
    st.rerun()


def render_sidebar(store: ConversationStore, controller: ChatSessionController):
    runtime = get_runtime()
    busy = controller.is_busy

    with st.sidebar:
        st.markdown("### Conversations")
        if st.button("[NEW] New Conversation", use_container_width=True, disabled=busy):
            if runtime.call(store.create_conversation) is None:
                st.warning("[WARN] Maximum of 100 conversations reached. Please delete some first.")
            else:
                st.rerun()

        st.divider()
        active_id = store.active_conversation_id
        for conversation in store.conversations:
            col_title, col_delete = st.columns([5, 1])
            label = f"**{conversation.title}**" if conversation.id == active_id else conversation.title
            if col_title.button(label, key=f"open-{conversation.id}",
                                use_container_width=True, disabled=busy):
                runtime.call(store.switch_conversation, conversation.id)
                st.rerun()
            if col_delete.button("[DEL]", key=f"delete-{conversation.id}", disabled=busy):
                runtime.call(store.delete_conversation, conversation.id)
                st.rerun()

        if store.persistence_error:
            st.divider()
            st.warning(f"[WARN] Changes are not being saved: {store.persistence_error}")


def main():
    """Run the Streamlit chat application."""
    init_session()
    store: ConversationStore = st.session_state.store
    controller: ChatSessionController = st.session_state.controller

    render_sidebar(store, controller)

    conversation = store.active_conversation
    if conversation is None:
        st.caption("No conversation selected")
        return

    st.title(conversation.title)
    count = len(conversation.messages)
    st.caption(f"{count} {'message' if count == 1 else 'messages'}")

    render_request_banner(controller)

    for msg in conversation.messages:
        render_message(msg)

    wait_for_reply(controller)

    if user_input := st.chat_input(
        "Type your message...",
        max_chars=MAX_MESSAGE_LENGTH,
        disabled=controller.is_busy or st.session_state.pending is not None,
    ):
        send_message(user_input, controller)


if __name__ == "__main__":
    main()
