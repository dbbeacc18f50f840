"""Tests for the thread-to-loop fragment relay."""

from __future__ import annotations

import asyncio
import threading
import unittest

from ollama_tui.exceptions import TransportError
from ollama_tui.models import FINAL_FRAGMENT, Fragment
from ollama_tui.relay import FragmentRelay, RelayEvent


class FragmentRelayTests(unittest.IsolatedAsyncioTestCase):
    async def test_events_arrive_in_emission_order(self) -> None:
        relay = FragmentRelay(asyncio.get_running_loop(), max_size=100)
        texts = [f"t{index}" for index in range(50)]

        def produce() -> None:
            for text in texts:
                relay.push_fragment(1, Fragment(text))
            relay.push_fragment(1, FINAL_FRAGMENT)

        thread = threading.Thread(target=produce)
        thread.start()
        received: list[str] = []
        while True:
            event = await asyncio.wait_for(relay.next(), timeout=5)
            if event.fragment.is_final:
                break
            received.append(event.fragment.text)
        await asyncio.to_thread(thread.join, 5)
        self.assertEqual(received, texts)

    async def test_full_relay_blocks_producer_without_dropping(self) -> None:
        relay = FragmentRelay(asyncio.get_running_loop(), max_size=1)
        pushed = threading.Event()

        def produce() -> None:
            relay.push_fragment(1, Fragment("a"))
            relay.push_fragment(1, Fragment("b"))
            pushed.set()

        thread = threading.Thread(target=produce)
        thread.start()
        await asyncio.sleep(0.1)
        self.assertFalse(pushed.is_set())
        self.assertEqual(relay.qsize(), 1)

        first = await asyncio.wait_for(relay.next(), timeout=5)
        second = await asyncio.wait_for(relay.next(), timeout=5)
        await asyncio.to_thread(thread.join, 5)
        self.assertTrue(pushed.is_set())
        self.assertEqual([first.fragment.text, second.fragment.text], ["a", "b"])

    async def test_errors_are_tagged_with_session(self) -> None:
        relay = FragmentRelay(asyncio.get_running_loop())
        error = TransportError("down")
        await asyncio.to_thread(relay.push_error, 3, error)
        event = await relay.next()
        self.assertEqual(event, RelayEvent(session_id=3, error=error))

    async def test_closed_relay_discards_pushes(self) -> None:
        relay = FragmentRelay(asyncio.get_running_loop())
        relay.close()
        await asyncio.to_thread(relay.push_fragment, 1, Fragment("x"))
        self.assertTrue(relay.closed)
        self.assertEqual(relay.qsize(), 0)

    async def test_close_releases_blocked_producer(self) -> None:
        relay = FragmentRelay(asyncio.get_running_loop(), max_size=1)
        returned = threading.Event()

        def produce() -> None:
            relay.push_fragment(1, Fragment("a"))
            relay.push_fragment(1, Fragment("b"))
            returned.set()

        thread = threading.Thread(target=produce, daemon=True)
        thread.start()
        await asyncio.sleep(0.1)
        self.assertFalse(returned.is_set())

        relay.close()
        await asyncio.to_thread(thread.join, 5)
        await asyncio.sleep(0)
        self.assertTrue(returned.is_set())
        self.assertEqual(relay.qsize(), 1)
        first = await relay.next()
        self.assertEqual(first.fragment.text, "a")

    async def test_size_is_at_least_one(self) -> None:
        relay = FragmentRelay(asyncio.get_running_loop(), max_size=0)
        self.assertEqual(relay.max_size, 1)


if __name__ == "__main__":
    unittest.main()
