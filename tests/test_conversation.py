"""Tests for the two conversation-state representations."""

from __future__ import annotations

import unittest

from ollama_tui.conversation import ConversationState, MessageHistory, OpaqueContext
from ollama_tui.models import ChatMessage, Provider


class OpaqueContextTests(unittest.TestCase):
    def test_apply_turn_replaces_vector_only_when_supplied(self) -> None:
        state = OpaqueContext()
        self.assertFalse(state.has_context())

        state.apply_turn("p1", "r1", [1, 2])
        self.assertEqual(state.vector, (1, 2))
        state.apply_turn("p2", "r2", None)
        self.assertEqual(state.vector, (1, 2))
        state.apply_turn("p3", "r3", [])
        self.assertEqual(state.vector, (1, 2))
        state.apply_turn("p4", "r4", [7])
        self.assertEqual(state.vector, (7,))
        self.assertTrue(state.has_context())

    def test_request_fields_omit_empty_context(self) -> None:
        state = OpaqueContext()
        self.assertEqual(state.request_fields("hi"), {"prompt": "hi"})
        state.apply_turn("hi", "there", (3, 4))
        self.assertEqual(state.request_fields("next"), {"prompt": "next", "context": [3, 4]})

    def test_clear_resets_vector(self) -> None:
        state = OpaqueContext([5])
        state.clear()
        self.assertEqual(state.vector, ())
        self.assertFalse(state.has_context())


class MessageHistoryTests(unittest.TestCase):
    def test_apply_turn_appends_user_then_assistant(self) -> None:
        history = MessageHistory()
        history.apply_turn("q1", "a1")
        history.apply_turn("q2", "")
        self.assertEqual(len(history), 4)
        self.assertEqual(
            history.messages,
            [
                ChatMessage("user", "q1"),
                ChatMessage("assistant", "a1"),
                ChatMessage("user", "q2"),
                ChatMessage("assistant", ""),
            ],
        )

    def test_request_fields_do_not_commit_new_turn(self) -> None:
        history = MessageHistory()
        history.apply_turn("q1", "a1")
        fields = history.request_fields("q2")
        self.assertEqual(
            fields["messages"],
            [
                {"role": "user", "content": "q1"},
                {"role": "assistant", "content": "a1"},
                {"role": "user", "content": "q2"},
            ],
        )
        self.assertEqual(len(history), 2)

    def test_messages_returns_copy(self) -> None:
        history = MessageHistory()
        history.apply_turn("q", "a")
        history.messages.clear()
        self.assertEqual(len(history), 2)

    def test_clear_empties_history(self) -> None:
        history = MessageHistory([ChatMessage("user", "x")])
        self.assertTrue(history.has_context())
        history.clear()
        self.assertFalse(history.has_context())


class RepresentationSelectionTests(unittest.TestCase):
    def test_for_provider(self) -> None:
        self.assertIsInstance(
            ConversationState.for_provider(Provider.LOCAL_GENERATOR), OpaqueContext
        )
        self.assertIsInstance(
            ConversationState.for_provider(Provider.HOSTED_CHAT), MessageHistory
        )


if __name__ == "__main__":
    unittest.main()
