from ahr_rotate.events import TypedEvent
from ahr_rotate.lobby import Lobby


class TestTypedEvent:
    def test_emit_calls_listeners_in_order(self):
        event = TypedEvent("test")
        calls = []
        event.on(lambda data: calls.append(("first", data)))
        event.on(lambda data: calls.append(("second", data)))
        event.emit({"x": 1})
        assert calls == [("first", {"x": 1}), ("second", {"x": 1})]

    def test_dispose_removes_listener(self):
        event = TypedEvent()
        calls = []
        dispose = event.on(calls.append)
        dispose()
        dispose()
        event.emit({})
        assert calls == []
        assert len(event) == 0

    def test_failing_listener_does_not_stop_others(self, caplog):
        event = TypedEvent("test")
        calls = []

        def broken(data):
            raise RuntimeError("boom")

        event.on(broken)
        event.on(calls.append)
        event.emit({"ok": True})
        assert calls == [{"ok": True}]
        assert "boom" in caplog.text


class TestLobbyState:
    def test_join_and_leave_track_players(self):
        lobby = Lobby("#mp_1")
        lobby.player_joined("a")
        lobby.player_joined("b")
        lobby.player_joined("a")
        assert lobby.players == ["a", "b"]
        lobby.player_left("a")
        assert lobby.players == ["b"]

    def test_host_cleared_after_host_leaves(self):
        lobby = Lobby("#mp_1")
        lobby.player_joined("a")
        lobby.host_changed("a")
        seen = []
        lobby.PlayerLeft.on(lambda e: seen.append((e, lobby.host)))
        lobby.match_started()
        lobby.player_left("a")
        # Listeners still see the departing host.
        assert seen == [({'player': 'a', 'match_in_progress': True}, "a")]
        assert lobby.host is None

    def test_host_change_adds_unknown_player(self):
        lobby = Lobby("#mp_1")
        lobby.host_changed("x")
        assert lobby.players == ["x"]

    def test_match_flags(self):
        lobby = Lobby("#mp_1")
        lobby.match_started()
        assert lobby.match_in_progress
        lobby.match_finished()
        assert not lobby.match_in_progress
        lobby.match_started()
        lobby.match_aborted()
        assert not lobby.match_in_progress

    def test_settings_replace_players_and_keep_host_when_unknown(self):
        lobby = Lobby("#mp_1")
        lobby.player_joined("old")
        lobby.host_changed("old")
        lobby.settings_updated(["a", "b", "a"], None)
        assert lobby.players == ["a", "b"]
        assert lobby.host == "old"

    def test_admin_messages(self):
        lobby = Lobby("#mp_1", configuration={"administrators": ["Admin"]})
        user_events, admin_events = [], []
        lobby.UserMessage.on(user_events.append)
        lobby.AdminMessage.on(admin_events.append)
        lobby.chat_message("Admin", "!forceskip")
        lobby.chat_message("someone", "hello")
        assert [e['sender'] for e in user_events] == ["Admin", "someone"]
        assert admin_events == [{'sender': "Admin", 'message': "!forceskip", 'is_admin': True}]

    def test_send_message(self):
        sent, seen = [], []
        lobby = Lobby("#mp_1", send=sent.append)
        lobby.SentMessage.on(seen.append)
        lobby.send_message("hello")
        assert sent == ["hello"]
        assert seen == [{'message': "hello"}]

    def test_send_without_transport_is_dropped(self):
        lobby = Lobby("#mp_1")
        seen = []
        lobby.SentMessage.on(seen.append)
        lobby.send_message("hello")
        assert seen == []
