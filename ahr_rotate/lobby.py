import logging

from ahr_rotate.events import TypedEvent

log = logging.getLogger("Lobby")


class Lobby:
    """State of one multiplayer room plus the events the room emits.

    The transport (see bancho.py) calls the mutator methods below as it parses
    room traffic; behaviours subscribe to the events. Outbound chat goes through
    send_message, which hands the text to the ``send`` callable.
    """

    def __init__(self, channel, send=None, configuration=None):
        self.channel = channel
        self._send = send
        self.configuration = configuration if configuration is not None else {}

        self.players = []
        self.host = None
        self.match_in_progress = False
        self.is_recovering = False

        # Events
        self.PlayerJoined = TypedEvent("PlayerJoined")
        self.PlayerLeft = TypedEvent("PlayerLeft")
        self.HostChanged = TypedEvent("HostChanged")
        self.MatchStarted = TypedEvent("MatchStarted")
        self.MatchFinished = TypedEvent("MatchFinished")
        self.SettingsUpdated = TypedEvent("SettingsUpdated")
        self.UserMessage = TypedEvent("UserMessage")
        self.AdminMessage = TypedEvent("AdminMessage")
        self.SentMessage = TypedEvent("SentMessage")

    @property
    def administrators(self):
        return self.configuration.get("administrators", [])

    def is_admin(self, player_name):
        return player_name in self.administrators

    def has_player(self, player_name):
        return player_name in self.players

    # --- Inbound (called by the transport) ---
    def player_joined(self, player_name):
        if player_name not in self.players:
            self.players.append(player_name)
        log.info(f"[{self.channel}] '{player_name}' joined. Players: {len(self.players)}")
        self.PlayerJoined.emit({'player': player_name})

    def player_left(self, player_name):
        if player_name in self.players:
            self.players.remove(player_name)
        else:
            log.warning(f"[{self.channel}] '{player_name}' left but was not in tracked player list?")
        log.info(f"[{self.channel}] '{player_name}' left. Players: {len(self.players)}")
        self.PlayerLeft.emit({'player': player_name, 'match_in_progress': self.match_in_progress})
        # Bancho leaves the room without a host until someone is given it.
        if self.host == player_name:
            self.host = None

    def host_changed(self, player_name):
        previous = self.host
        self.host = player_name
        if player_name not in self.players:
            log.warning(f"[{self.channel}] New host '{player_name}' wasn't in player list, adding.")
            self.players.append(player_name)
        log.info(f"[{self.channel}] Host changed: {previous} -> {player_name}")
        self.HostChanged.emit({'player': player_name, 'previous': previous})

    def host_cleared(self):
        log.info(f"[{self.channel}] Host cleared (was {self.host}).")
        self.host = None

    def match_started(self):
        self.match_in_progress = True
        log.info(f"[{self.channel}] Match started.")
        self.MatchStarted.emit({})

    def match_finished(self):
        self.match_in_progress = False
        log.info(f"[{self.channel}] Match finished.")
        self.MatchFinished.emit({})

    def match_aborted(self):
        self.match_in_progress = False
        log.info(f"[{self.channel}] Match aborted.")

    def settings_updated(self, players, host=None):
        """Replaces player list (and host, when one was reported) with a full settings snapshot."""
        self.players = list(dict.fromkeys(players))
        if host is not None:
            self.host = host
        log.info(f"[{self.channel}] Settings updated. Host: {self.host}. Players: {self.players}")
        self.SettingsUpdated.emit({'players': list(self.players), 'host': self.host})

    def chat_message(self, sender, message):
        is_admin = self.is_admin(sender)
        payload = {'sender': sender, 'message': message, 'is_admin': is_admin}
        self.UserMessage.emit(payload)
        if is_admin:
            self.AdminMessage.emit(payload)

    # --- Outbound ---
    def send_message(self, message):
        if self._send is None:
            log.warning(f"[{self.channel}] No transport attached, dropping message: {message}")
            return
        self._send(message)
        self.SentMessage.emit({'message': message})
