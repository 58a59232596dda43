"""Conversation store: the single owner and writer of AppState.

Every mutation is a synchronous read-modify-write followed by a save through
the storage collaborator. A failed save is logged and remembered, but the
in-memory state is kept so the session can carry on unpersisted.
"""

import re

import structlog

from frontend.core.errors import PersistenceError
from frontend.core.models import AppState, Conversation, Message, MessageStatus
from frontend.core.storage import StateStorage

logger = structlog.get_logger(__name__)

MAX_CONVERSATIONS = 100

_TITLE_NUMBER = re.compile(r"Conversation (\d+)")


def _default_conversation() -> Conversation:
    return Conversation(title="Conversation 1")


class ConversationStore:
    """Holds the conversation list and the active conversation id.

    Readers get deep copies; only the methods below change state.
    """

    def __init__(self, storage: StateStorage, max_conversations: int = MAX_CONVERSATIONS):
        self._storage = storage
        self._state = AppState()
        self.max_conversations = max_conversations
        self.persistence_error: PersistenceError | None = None

    def initialize(self) -> None:
        """Load persisted state, creating the default conversation if there is none."""
        loaded = self._storage.load()

        if loaded is None or not loaded.conversations:
            default = _default_conversation()
            self._state = AppState(conversations=[default], active_conversation_id=default.id)
            logger.info("store.initialized", source="default")
            self._persist()
            return

        self._state = loaded
        if self._find(loaded.active_conversation_id) is None:
            first_id = loaded.conversations[0].id
            logger.warning("store.active_id_repaired",
                           stale=loaded.active_conversation_id, active=first_id)
            self._state = self._state.model_copy(update={"active_conversation_id": first_id})
            self._persist()

        logger.info("store.initialized", source="storage",
                    conversations=len(self._state.conversations))

    # Readers

    @property
    def state(self) -> AppState:
        return self._state.model_copy(deep=True)

    @property
    def conversations(self) -> list[Conversation]:
        return [c.model_copy(deep=True) for c in self._state.conversations]

    @property
    def active_conversation_id(self) -> str | None:
        return self._state.active_conversation_id

    @property
    def active_conversation(self) -> Conversation | None:
        return self.get_conversation(self._state.active_conversation_id)

    def get_conversation(self, conversation_id: str | None) -> Conversation | None:
        conversation = self._find(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    # Mutations

    def create_conversation(self) -> Conversation | None:
        """Prepend a new conversation and make it active.

        Returns:
            The new conversation, or None when the store is at capacity
            (state is left unchanged).
        """
        if len(self._state.conversations) >= self.max_conversations:
            logger.warning("store.capacity_reached", limit=self.max_conversations)
            return None

        conversation = Conversation(title=f"Conversation {self._next_title_number()}")
        self._state = self._state.model_copy(update={
            "conversations": [conversation, *self._state.conversations],
            "active_conversation_id": conversation.id,
        })
        logger.info("store.conversation_created", conversation_id=conversation.id,
                    title=conversation.title)
        self._persist()
        return conversation.model_copy(deep=True)

    def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation, repointing the active id if it was active.

        The store never ends up empty: deleting the last conversation replaces
        it with a fresh default one.
        """
        remaining = [c for c in self._state.conversations if c.id != conversation_id]
        if len(remaining) == len(self._state.conversations):
            logger.debug("store.delete_unknown", conversation_id=conversation_id)
            return False

        active_id = self._state.active_conversation_id
        if not remaining:
            default = _default_conversation()
            remaining = [default]
            active_id = default.id
        elif active_id == conversation_id:
            active_id = remaining[0].id

        self._state = self._state.model_copy(update={
            "conversations": remaining,
            "active_conversation_id": active_id,
        })
        logger.info("store.conversation_deleted", conversation_id=conversation_id, active=active_id)
        self._persist()
        return True

    def switch_conversation(self, conversation_id: str) -> bool:
        if self._find(conversation_id) is None:
            logger.debug("store.switch_unknown", conversation_id=conversation_id)
            return False

        self._state = self._state.model_copy(update={"active_conversation_id": conversation_id})
        self._persist()
        return True

    def append_message(self, message: Message) -> bool:
        """Append to the active conversation. No-op without one."""
        active = self._find(self._state.active_conversation_id)
        if active is None:
            logger.warning("store.append_without_active", message_id=message.id)
            return False

        updated = active.model_copy(update={"messages": [*active.messages, message.model_copy()]})
        self._replace_conversation(updated)
        logger.debug("store.message_appended", conversation_id=active.id,
                     message_id=message.id, role=message.role.value)
        self._persist()
        return True

    def update_message_status(self, message_id: str, status: MessageStatus) -> bool:
        """Overwrite a message's status within the active conversation."""
        active = self._find(self._state.active_conversation_id)
        if active is None:
            return False

        messages = list(active.messages)
        for index, message in enumerate(messages):
            if message.id == message_id:
                messages[index] = message.model_copy(update={"status": status})
                break
        else:
            logger.debug("store.status_target_missing", message_id=message_id)
            return False

        self._replace_conversation(active.model_copy(update={"messages": messages}))
        logger.debug("store.message_status", message_id=message_id, status=status.value)
        self._persist()
        return True

    # Internals

    def _find(self, conversation_id: str | None) -> Conversation | None:
        if conversation_id is None:
            return None
        for conversation in self._state.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def _replace_conversation(self, updated: Conversation) -> None:
        conversations = [updated if c.id == updated.id else c for c in self._state.conversations]
        self._state = self._state.model_copy(update={"conversations": conversations})

    def _next_title_number(self) -> int:
        numbers = [0]
        for conversation in self._state.conversations:
            match = _TITLE_NUMBER.search(conversation.title)
            if match:
                numbers.append(int(match.group(1)))
        return max(numbers) + 1

    def _persist(self) -> bool:
        try:
            self._storage.save(self._state)
        except PersistenceError as e:
            self.persistence_error = e
            logger.error("store.persist_failed", error=str(e))
            return False

        self.persistence_error = None
        return True
