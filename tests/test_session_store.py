import pytest

from models.session_models import MessageRole
from services.realtime.session_store import ConversationStore


class TestConversationStore:
    def test_messages_are_appended_in_order(self):
        store = ConversationStore()
        state = store.create("openai")

        store.add_message(state.conversation_id, MessageRole.USER, "  what is this?  ")
        store.add_message(state.conversation_id, MessageRole.ASSISTANT, "A plant.")

        assert [m.content for m in store.get(state.conversation_id).messages] == ["what is this?", "A plant."]
        assert store.messages_as_text(state.conversation_id) == "USER: what is this?\nASSISTANT: A plant."

    def test_limit_keeps_latest_messages(self):
        store = ConversationStore()
        state = store.create("openai")
        for index in range(5):
            store.add_message(state.conversation_id, MessageRole.USER, f"m{index}")

        assert store.messages_as_text(state.conversation_id, limit=2) == "USER: m3\nUSER: m4"

    def test_closed_conversation_rejects_messages(self):
        store = ConversationStore()
        state = store.create("alibaba_cloud")
        store.close(state.conversation_id)

        with pytest.raises(RuntimeError):
            store.add_message(state.conversation_id, MessageRole.USER, "late")

    def test_blank_text_and_missing_ids(self):
        store = ConversationStore()
        state = store.create("alibaba_cloud")

        with pytest.raises(ValueError):
            store.add_message(state.conversation_id, MessageRole.USER, "   ")
        store.discard(state.conversation_id)
        with pytest.raises(KeyError):
            store.get(state.conversation_id)
