"""
Tests for the protocol dispatcher.

Drives accept, inbound frames and close through fake transports and
checks what each connection receives.
"""

import itertools

from relay_gateway.core.connection.broadcaster import Broadcaster
from relay_gateway.core.connection.dispatcher import (
    INVALID,
    ProtocolDispatcher,
    normalize_text,
    trim_text,
)
from relay_gateway.server_state import ServerState
from tests.conftest import FakeClock, FakeTransport


class TestAccept:
    def test_greeting_sequence(self, connect):
        """connected, then history, then online_count."""
        info, transport = connect("10.1.2.3")

        types = [f["type"] for f in transport.frames]
        assert types == ["connected", "history", "online_count"]

        connected = transport.frames[0]
        assert connected["clientId"] == info.id
        assert isinstance(connected["serverTime"], int)
        assert connected["message"] == "Connected to Global Chat Server"
        assert transport.frames[1]["messages"] == []
        assert transport.frames[2]["count"] == 1
        assert info.remote_address == "10.1.2.3"

    def test_online_count_reaches_existing_connections(self, connect):
        _, a = connect()
        a.clear()
        connect()
        assert a.frames == [{"type": "online_count", "count": 2}]

    def test_history_replayed_to_new_connection(self, connect, dispatcher):
        info, _ = connect()
        dispatcher.dispatch(info.id, {"type": "message", "message": "first"})
        dispatcher.dispatch(info.id, {"type": "message", "message": "second"})

        _, late = connect()
        history = late.of_type("history")[0]["messages"]
        assert [m["message"] for m in history] == ["first", "second"]
        assert all(m["type"] == "message" for m in history)

    def test_id_collision_is_redrawn(self, state, broadcaster):
        ids = iter(["dup", "dup", "fresh"])
        dispatcher = ProtocolDispatcher(
            state.registry, state.history, broadcaster, id_factory=lambda: next(ids)
        )
        first = dispatcher.on_accept(FakeTransport(), "a")
        second = dispatcher.on_accept(FakeTransport(), "b")
        assert first.id == "dup"
        assert second.id == "fresh"
        assert state.registry.count() == 2

    def test_allocated_id_is_used(self, state, dispatcher):
        connection_id = dispatcher.allocate_id()
        info = dispatcher.on_accept(FakeTransport(), "a", connection_id=connection_id)

        assert info.id == connection_id
        assert state.registry.lookup(connection_id) is info

    def test_taken_id_is_replaced(self, state, broadcaster):
        ids = iter(["first", "second"])
        dispatcher = ProtocolDispatcher(
            state.registry, state.history, broadcaster, id_factory=lambda: next(ids)
        )
        dispatcher.on_accept(FakeTransport(), "a")
        info = dispatcher.on_accept(FakeTransport(), "b", connection_id="first")
        assert info.id == "second"


class TestChatMessage:
    def test_broadcast_to_everyone_including_sender(self, connect, dispatcher, state):
        a_info, a = connect()
        _, b = connect()
        a.clear()
        b.clear()

        dispatcher.dispatch(a_info.id, {"type": "message", "message": "  hi  ", "username": "Bob"})

        for transport in (a, b):
            assert len(transport.frames) == 1
            frame = transport.frames[0]
            assert frame["type"] == "message"
            assert frame["username"] == "Bob"
            assert frame["message"] == "hi"
            assert isinstance(frame["timestamp"], int)
        assert len(state.history) == 1

    def test_username_fallbacks(self, connect, dispatcher, state):
        info, _ = connect()

        dispatcher.dispatch(info.id, {"type": "message", "message": "one"})
        dispatcher.dispatch(info.id, {"type": "set_username", "username": "Alice"})
        dispatcher.dispatch(info.id, {"type": "message", "message": "two"})
        dispatcher.dispatch(info.id, {"type": "message", "message": "three", "username": "   "})

        names = [m.username for m in state.history.snapshot()]
        assert names == ["Anonymous", "Alice", "Alice"]

    def test_supplied_username_does_not_change_stored_name(self, connect, dispatcher):
        info, _ = connect()
        dispatcher.dispatch(info.id, {"type": "message", "message": "x", "username": "Eve"})
        assert info.username is None

    def test_blank_messages_are_ignored(self, connect, dispatcher, state):
        info, transport = connect()
        transport.clear()

        for bad in ("", "   ", "\n\t", None, 42, ["hi"]):
            dispatcher.dispatch(info.id, {"type": "message", "message": bad})
        dispatcher.dispatch(info.id, {"type": "message"})

        assert transport.frames == []
        assert len(state.history) == 0

    def test_byte_order_mark_counts_as_blank(self, connect, dispatcher, state):
        info, transport = connect()
        transport.clear()

        dispatcher.dispatch(info.id, {"type": "message", "message": "\ufeff"})
        dispatcher.dispatch(info.id, {"type": "message", "message": " \ufeff \n"})

        assert transport.frames == []
        assert len(state.history) == 0

        dispatcher.dispatch(info.id, {"type": "message", "message": "\ufeffhi\ufeff"})
        assert state.history.snapshot()[0].message == "hi"

    def test_message_truncated(self, connect, dispatcher, state):
        info, _ = connect()
        dispatcher.dispatch(info.id, {"type": "message", "message": "x" * 600})
        assert state.history.snapshot()[0].message == "x" * 500

    def test_supplied_username_truncated(self, connect, dispatcher, state):
        info, _ = connect()
        dispatcher.dispatch(info.id, {"type": "message", "message": "hi", "username": "n" * 30})
        assert state.history.snapshot()[0].username == "n" * 20

    def test_non_string_username_drops_frame(self, connect, dispatcher, state):
        info, transport = connect()
        transport.clear()
        dispatcher.dispatch(info.id, {"type": "message", "message": "hi", "username": 7})
        assert transport.frames == []
        assert len(state.history) == 0


class TestSetUsername:
    def test_first_assignment_announced_to_others_only(self, connect, dispatcher):
        a_info, a = connect()
        _, b = connect()
        a.clear()
        b.clear()

        dispatcher.dispatch(a_info.id, {"type": "set_username", "username": "  Alice  "})

        assert a.frames == [{"type": "username_set", "username": "Alice"}]
        assert len(b.frames) == 1
        assert b.frames[0]["type"] == "system_message"
        assert b.frames[0]["message"] == "Alice joined the chat"
        assert a_info.username == "Alice"

    def test_rename_not_announced(self, connect, dispatcher):
        a_info, a = connect()
        _, b = connect()
        dispatcher.dispatch(a_info.id, {"type": "set_username", "username": "Alice"})
        a.clear()
        b.clear()

        dispatcher.dispatch(a_info.id, {"type": "set_username", "username": "Alicia"})

        assert a.frames == [{"type": "username_set", "username": "Alicia"}]
        assert b.frames == []
        assert a_info.username == "Alicia"

    def test_invalid_usernames_ignored(self, connect, dispatcher):
        info, transport = connect()
        transport.clear()

        for bad in ("", "   ", None, 12, {"name": "x"}):
            dispatcher.dispatch(info.id, {"type": "set_username", "username": bad})

        assert transport.frames == []
        assert info.username is None

    def test_byte_order_mark_username_ignored(self, connect, dispatcher):
        info, transport = connect()
        transport.clear()

        dispatcher.dispatch(info.id, {"type": "set_username", "username": "\ufeff "})

        assert transport.frames == []
        assert info.username is None

    def test_username_truncated(self, connect, dispatcher):
        info, transport = connect()
        dispatcher.dispatch(info.id, {"type": "set_username", "username": "a" * 25})
        assert info.username == "a" * 20
        assert transport.of_type("username_set")[0]["username"] == "a" * 20


class TestPing:
    def test_pong_to_sender_only(self, connect, dispatcher, clock):
        a_info, a = connect()
        _, b = connect()
        a.clear()
        b.clear()

        received_at = clock()
        dispatcher.dispatch(a_info.id, {"type": "ping"})

        assert len(a.frames) == 1
        assert a.frames[0]["type"] == "pong"
        assert a.frames[0]["timestamp"] >= received_at
        assert b.frames == []

    def test_one_pong_per_ping(self, connect, dispatcher):
        info, transport = connect()
        transport.clear()
        for _ in range(5):
            dispatcher.dispatch(info.id, {"type": "ping"})
        assert len(transport.of_type("pong")) == 5


class TestUnknownFrames:
    def test_unknown_type_ignored(self, connect, dispatcher):
        info, transport = connect()
        transport.clear()

        dispatcher.dispatch(info.id, {"type": "shout", "message": "hi"})
        dispatcher.dispatch(info.id, {"type": 3})
        dispatcher.dispatch(info.id, {"message": "no type"})

        assert transport.frames == []

    def test_frame_for_unknown_connection_ignored(self, dispatcher, state):
        dispatcher.dispatch("nobody", {"type": "message", "message": "hi"})
        assert len(state.history) == 0


class TestClose:
    def test_named_connection_leaves(self, connect, dispatcher):
        a_info, a = connect()
        b_info, _ = connect()
        dispatcher.dispatch(b_info.id, {"type": "set_username", "username": "Bob"})
        a.clear()

        dispatcher.on_close(b_info.id)

        assert [f["type"] for f in a.frames] == ["system_message", "online_count"]
        assert a.frames[0]["message"] == "Bob left the chat"
        assert a.frames[1]["count"] == 1

    def test_anonymous_connection_leaves_silently(self, connect, dispatcher):
        _, a = connect()
        b_info, _ = connect()
        a.clear()

        dispatcher.on_close(b_info.id)

        assert a.frames == [{"type": "online_count", "count": 1}]

    def test_close_is_idempotent(self, connect, dispatcher, state):
        _, a = connect()
        b_info, _ = connect()
        a.clear()

        dispatcher.on_close(b_info.id)
        dispatcher.on_close(b_info.id)

        assert len(a.of_type("online_count")) == 1
        assert state.registry.count() == 1


class TestScenario:
    def test_two_clients(self):
        """Alice and Bob: join, chat, leave."""
        state = ServerState.create()
        dispatcher = ProtocolDispatcher(
            state.registry,
            state.history,
            Broadcaster(state.registry),
            clock=FakeClock(),
            id_factory=lambda c=itertools.count(): f"id{next(c)}",
        )

        a = FakeTransport()
        a_info = dispatcher.on_accept(a, "1.1.1.1")
        assert [f["type"] for f in a.frames] == ["connected", "history", "online_count"]
        assert a.frames[1]["messages"] == []
        assert a.frames[2]["count"] == 1

        a.clear()
        dispatcher.dispatch(a_info.id, {"type": "set_username", "username": "Alice"})
        assert a.frames == [{"type": "username_set", "username": "Alice"}]

        a.clear()
        b = FakeTransport()
        b_info = dispatcher.on_accept(b, "2.2.2.2")
        assert a.frames == [{"type": "online_count", "count": 2}]
        assert b.of_type("history")[0]["messages"] == []
        assert b.of_type("online_count")[-1]["count"] == 2

        a.clear()
        b.clear()
        dispatcher.dispatch(b_info.id, {"type": "set_username", "username": "Bob"})
        assert a.of_type("system_message")[0]["message"] == "Bob joined the chat"
        assert b.of_type("system_message") == []

        a.clear()
        b.clear()
        dispatcher.dispatch(a_info.id, {"type": "message", "message": "hi"})
        for transport in (a, b):
            frame = transport.of_type("message")[0]
            assert frame["username"] == "Alice"
            assert frame["message"] == "hi"
        assert len(state.history) == 1

        a.clear()
        dispatcher.on_close(b_info.id)
        assert a.frames[0]["message"] == "Bob left the chat"
        assert a.frames[1] == {"type": "online_count", "count": 1}


class TestNormalizeText:
    def test_values(self):
        assert normalize_text("  x  ", 20) == "x"
        assert normalize_text("", 20) == ""
        assert normalize_text(None, 20) is None
        assert normalize_text(1.5, 20) is INVALID
        assert normalize_text("abcdef", 3) == "abc"

    def test_trim_strips_byte_order_marks(self):
        assert trim_text("\ufeff") == ""
        assert trim_text(" \ufeff\u00a0x y\ufeff\t") == "x y"
        assert trim_text("a\ufeffb") == "a\ufeffb"
