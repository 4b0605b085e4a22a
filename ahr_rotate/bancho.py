import logging
import re
import signal
import sys
import time
from pathlib import Path

import irc.client

from ahr_rotate.config import CONFIG_FILE, DEFAULT_USERNAME, load_or_generate_config, save_config
from ahr_rotate.lobby import Lobby
from ahr_rotate.recovery import snapshot_queue
from ahr_rotate.rotation import AutoHostRotate

log = logging.getLogger("BanchoClient")

BANCHO_BOT = "BanchoBot"
MAX_MESSAGE_BYTES = 450

BOT_STATE_INITIALIZING = "INITIALIZING"
BOT_STATE_CONNECTED_WAITING = "CONNECTED_WAITING"
BOT_STATE_JOINING = "JOINING"
BOT_STATE_IN_ROOM = "IN_ROOM"
BOT_STATE_SHUTTING_DOWN = "SHUTTING_DOWN"

# --- Global State ---
shutdown_requested = False

JOINED_RE = re.compile(r"(.+?) joined in slot \d+")
LEFT_RE = re.compile(r"(.+?) left the game\.")
KICKED_RE = re.compile(r"(.+?) was kicked from the room\.")
HOST_RE = re.compile(r"(.+?) became the host\.")
PLAYERS_RE = re.compile(r"Players: (\d+)")
SLOT_RE = re.compile(r"Slot (\d+)\s+(?:Not Ready|Ready|No Map)\s+https://osu\.ppy\.sh/u/\d+\s+(.+)")
SLOT_NAME_WIDTH = 16


class BanchoLobbyClient(irc.client.SimpleIRCClient):
    """Joins one multiplayer room and feeds its BanchoBot traffic into a Lobby with host rotation attached."""

    def __init__(self, config, config_path=CONFIG_FILE):
        super().__init__()
        self.config = config
        self.config_path = config_path
        self.bot_state = BOT_STATE_INITIALIZING
        self.target_channel = None
        self.lobby = None
        self.rotation = None

        # !mp settings parsing
        self._settings_expected = None
        self._settings_players = []
        self._settings_slots_seen = 0
        self._settings_host = None

    # --- Lobby Lifecycle ---
    def attach_lobby(self, channel):
        """Creates the Lobby for channel and starts host rotation on it."""
        self.target_channel = channel
        self.lobby = Lobby(channel, send=self.send_message, configuration=self.config)
        self.rotation = AutoHostRotate(self.lobby).attach()
        self.lobby.MatchFinished.on(self._on_match_finished)
        if self.config.get("previous_queue"):
            log.info(f"Previous queue found, recovering session: {self.config['previous_queue']}")
            self.lobby.is_recovering = True
        self._reset_settings_block()
        self.bot_state = BOT_STATE_IN_ROOM
        return self.lobby

    def detach_lobby(self):
        if self.rotation:
            self.rotation.detach()
        self.rotation = None
        self.lobby = None
        self.target_channel = None
        self._reset_settings_block()
        self.bot_state = BOT_STATE_CONNECTED_WAITING

    def request_settings(self):
        log.info("Requesting lobby state with !mp settings")
        self.send_message("!mp settings")

    def _on_match_finished(self, event):
        # The settings reply drives the post-match rotation.
        self.request_settings()

    # --- Core IRC Event Handlers ---
    def on_welcome(self, connection, event):
        log.info(f"Connected to {connection.server}:{connection.port} as {connection.get_nickname()}")
        self.bot_state = BOT_STATE_CONNECTED_WAITING
        room_id = self.config.get("room_id")
        if room_id:
            self.join_room(room_id)
        else:
            log.warning("No 'room_id' configured. Set it in the config file and restart.")
            _request_shutdown("No room configured")

    def on_nicknameinuse(self, connection, event):
        log.error(f"Nickname '{connection.get_nickname()}' is in use. Is another client logged in?")
        _request_shutdown("Nickname in use")

    def join_room(self, room_id):
        if not str(room_id).isdigit():
            log.error(f"Invalid room ID provided for joining: {room_id}")
            return
        self.target_channel = f"#mp_{room_id}"
        self.bot_state = BOT_STATE_JOINING
        log.info(f"Attempting to join channel: {self.target_channel}")
        try:
            self.connection.join(self.target_channel)
        except irc.client.ServerNotConnectedError:
            log.warning("Connection lost before join command could be sent.")
            _request_shutdown("Connection lost")

    def on_join(self, connection, event):
        channel = event.target
        nick = event.source.nick
        if not self._is_target(channel):
            return
        if nick == self.config.get("username") and self.bot_state == BOT_STATE_JOINING:
            log.info(f"Successfully joined {channel}")
            self.attach_lobby(channel)
            if self.config.get("welcome_message"):
                self.send_message(self.config["welcome_message"])
            self.request_settings()

    def on_part(self, connection, event):
        if event.source.nick == self.config.get("username") and self._is_target(event.target):
            log.warning(f"Left channel {event.target}. Host rotation stopped.")
            self.detach_lobby()

    def on_kick(self, connection, event):
        kicked_nick = event.arguments[0] if event.arguments else ""
        if kicked_nick == self.config.get("username") and self._is_target(event.target):
            log.warning(f"Kicked from channel {event.target}. Host rotation stopped.")
            self.detach_lobby()

    def on_disconnect(self, connection, event):
        reason = event.arguments[0] if event.arguments else "Unknown reason"
        log.warning(f"Disconnected from server: {reason}")
        if self.bot_state != BOT_STATE_SHUTTING_DOWN:
            _request_shutdown(f"Disconnected: {reason}")

    def on_err_nosuchchannel(self, connection, event):
        log.error(f"Cannot join '{event.arguments[0] if event.arguments else self.target_channel}': No such channel/Invalid ID.")
        _request_shutdown("Room not found")

    def on_pubmsg(self, connection, event):
        if self.lobby is None or not self._is_target(event.target):
            return
        sender = event.source.nick
        message = event.arguments[0]
        if sender == self.config.get("username"):
            return
        log.info(f"[{event.target}] <{sender}> {message}")
        if sender == BANCHO_BOT:
            self.parse_bancho_message(message)
        else:
            self.lobby.chat_message(sender, message)

    def _is_target(self, channel):
        return bool(self.target_channel) and channel.lower() == self.target_channel.lower()

    # --- BanchoBot Message Parsing ---
    def parse_bancho_message(self, msg):
        lobby = self.lobby
        if lobby is None:
            log.debug(f"Ignoring Bancho message outside a room: {msg[:50]}")
            return

        if msg == "The match has started!": lobby.match_started()
        elif msg == "The match has finished!": lobby.match_finished()
        elif msg == "Match Aborted": lobby.match_aborted()
        elif msg == "Cleared match host": lobby.host_cleared()
        elif msg.startswith("Changed match host to "): pass  # followed by "... became the host."
        elif msg.endswith(" became the host."):
            match = HOST_RE.match(msg)
            if match: lobby.host_changed(match.group(1).strip())
        elif " joined in slot " in msg:
            match = JOINED_RE.match(msg)
            if match: lobby.player_joined(match.group(1).strip())
        elif msg.endswith(" left the game."):
            match = LEFT_RE.match(msg)
            if match: lobby.player_left(match.group(1).strip())
        elif msg.endswith(" was kicked from the room."):
            match = KICKED_RE.match(msg)
            if match: lobby.player_left(match.group(1).strip())
        elif msg.startswith("Players:"): self._parse_player_count(msg)
        elif msg.startswith("Slot "): self._parse_slot_message(msg)
        else:
            log.debug(f"Ignoring unrecognized BanchoBot message: {msg}")

    def _reset_settings_block(self):
        self._settings_expected = None
        self._settings_players = []
        self._settings_slots_seen = 0
        self._settings_host = None

    def _parse_player_count(self, msg):
        match = PLAYERS_RE.match(msg)
        if not match:
            log.warning(f"Could not parse player count msg: {msg}")
            return
        self._reset_settings_block()
        self._settings_expected = int(match.group(1))
        log.debug(f"Settings block started, expecting {self._settings_expected} slot(s).")
        if self._settings_expected == 0:
            self._finish_settings_block()

    def _parse_slot_message(self, msg):
        if self._settings_expected is None:
            log.debug(f"Slot message outside a settings block: {msg}")
            return
        # Every slot line counts towards the block, even one we cannot read a name from.
        self._settings_slots_seen += 1
        match = SLOT_RE.match(msg)
        if not match:
            log.warning(f"No player match in slot msg (regex failed): {msg}")
        else:
            # Name is padded to a fixed column; "[Host / Team ...]" markers follow it.
            player_field = match.group(2)
            player_name = player_field[:SLOT_NAME_WIDTH].strip()
            marker = player_field[SLOT_NAME_WIDTH:].strip()
            if not player_name:
                log.warning(f"Parsed empty player name from slot {match.group(1)}: {msg}")
            else:
                self._settings_players.append(player_name)
                if "[host" in marker.lower():
                    self._settings_host = player_name
        if self._settings_slots_seen >= self._settings_expected:
            self._finish_settings_block()

    def _finish_settings_block(self):
        lobby = self.lobby
        players = self._settings_players
        host = self._settings_host
        self._reset_settings_block()
        was_recovering = lobby.is_recovering
        lobby.settings_updated(players, host)
        if was_recovering:
            # Snapshot is consumed by the first reconciliation.
            lobby.is_recovering = False
            self.config["previous_queue"] = None
            log.info("Session recovery complete.")

    # --- Sending ---
    def send_message(self, message):
        if not self.target_channel:
            log.warning(f"Cannot send to channel (state={self.bot_state}): {message}")
            return
        self._send_irc_message(self.target_channel, message)

    def _send_irc_message(self, target, message):
        if not self.connection.is_connected():
            log.warning(f"Cannot send, not connected: Target={target}, Msg={message}")
            return
        full_msg = str(message)
        encoded_msg = full_msg.encode('utf-8', 'ignore')
        if len(encoded_msg) > MAX_MESSAGE_BYTES:
            log.warning(f"Truncating long message (>{MAX_MESSAGE_BYTES} bytes): {full_msg[:100]}...")
            full_msg = encoded_msg[:MAX_MESSAGE_BYTES].decode('utf-8', 'ignore') + "..."
        try:
            log.info(f"SEND -> {target}: {full_msg}")
            self.connection.privmsg(target, full_msg)
        except irc.client.ServerNotConnectedError:
            log.warning("Failed to send message: Disconnected.")
            _request_shutdown("Disconnected during send")

    # --- Shutdown ---
    def save_queue_snapshot(self):
        """Stores the current queue as 'previous_queue' so a restart can recover it."""
        if self.rotation is None:
            return False
        if self.lobby.is_recovering:
            # The queue has not been rebuilt yet; keep the snapshot for the next start.
            log.info(f"Recovery still pending, keeping previous queue: {self.config.get('previous_queue')!r}")
            return save_config(self.config, self.config_path)
        snapshot = snapshot_queue(self.rotation.queue)
        self.config["previous_queue"] = snapshot or None
        log.info(f"Saving queue snapshot: {snapshot!r}")
        return save_config(self.config, self.config_path)

    def shutdown(self, message="Client shutting down."):
        log.info("Initiating shutdown sequence...")
        self.bot_state = BOT_STATE_SHUTTING_DOWN
        self.save_queue_snapshot()
        conn_available = self.connection.is_connected()
        if conn_available and self.target_channel and self.config.get("goodbye_message"):
            self._send_irc_message(self.target_channel, self.config["goodbye_message"])
        try:
            if conn_available: self.connection.quit(message)
        except irc.client.ServerNotConnectedError:
            log.warning("Cannot send QUIT, already disconnected.")
        finally:
            if conn_available:
                self.connection.disconnect("Client shutdown")


def _request_shutdown(reason=""):
    global shutdown_requested
    if not shutdown_requested:
        log.info(f"Shutdown requested. Reason: {reason if reason else 'N/A'}")
        shutdown_requested = True


# --- Signal Handling ---
def signal_handler(sig, frame):
    global shutdown_requested
    if not shutdown_requested:
        log.info(f"Shutdown signal ({signal.Signals(sig).name}) received. Stopping gracefully...")
        shutdown_requested = True
    else: log.warning("Shutdown already in progress.")


# --- Main Execution ---
def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else CONFIG_FILE
    config = load_or_generate_config(config_path)
    if config["username"] == DEFAULT_USERNAME:
        log.info("Edit the generated config file and run again.")
        return

    bot = BanchoLobbyClient(config, config_path)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    log.info(f"Connecting to {config['server']}:{config['port']} as {config['username']}...")
    try:
        bot.connect(
            server=config['server'], port=config['port'],
            nickname=config['username'], password=config['password'],
            username=config['username']
        )
    except irc.client.ServerConnectionError as e:
        log.critical(f"IRC Connection failed: {e}")
        sys.exit(1)

    log.info("Starting main processing loop...")
    while not shutdown_requested:
        try:
            bot.reactor.process_once(timeout=0.2)
        except irc.client.ServerNotConnectedError:
            log.warning("Disconnected during processing loop.")
            break
        except KeyboardInterrupt:
            break
        except Exception as e:
            log.error(f"Unhandled exception in main loop: {e}", exc_info=True)
            time.sleep(2)

    bot.shutdown("Client shutting down normally.")
    log.info("osu-ahr-rotate finished.")
    logging.shutdown()
