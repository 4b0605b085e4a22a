import logging

from ahr_rotate.host_queue import HostQueue
from ahr_rotate.recovery import recover_queue
from ahr_rotate.vote import PlayerVote, votes_needed

log = logging.getLogger("AutoHostRotate")

QUEUE_DISPLAY_SIZE = 5
ZERO_WIDTH_SPACE = "\u200b"


def format_host_command(player_name):
    """!mp host takes the name as a single token; Bancho accepts '_' for spaces."""
    return f"!mp host {player_name.replace(' ', '_')}"


def format_queue_message(queue, limit=QUEUE_DISPLAY_SIZE):
    if not queue:
        return "Queue: (empty)"
    # Zero width space after the first letter so listed players are not highlighted.
    names = [f"{p[0]}{ZERO_WIDTH_SPACE}{p[1:]}" for p in queue.head(limit)]
    queue_str = ", ".join(names)
    if len(queue) > limit:
        queue_str += "..."
    return f"Queue: {queue_str}"


class AutoHostRotate:
    """Manages a queue and passes the host around, so everyone gets a chance to pick a map."""

    def __init__(self, lobby):
        self.lobby = lobby
        self.queue = HostQueue()
        self.skip_vote = PlayerVote("Skip host vote", self.get_votes_needed)
        self.has_skipped_host = False
        self._disposers = []

    def attach(self):
        lobby = self.lobby
        self._disposers = [
            lobby.PlayerJoined.on(self.on_player_joined),
            lobby.PlayerLeft.on(self.on_player_left),
            lobby.MatchStarted.on(self.on_match_started),
            lobby.SettingsUpdated.on(self.on_settings_updated),
            lobby.HostChanged.on(self.on_host_changed),
            lobby.UserMessage.on(self.on_user_message),
            lobby.AdminMessage.on(self.on_admin_message),
        ]
        log.info(f"Host rotation attached to {lobby.channel}.")
        return self

    def detach(self):
        for dispose in self._disposers:
            dispose()
        self._disposers = []
        log.info(f"Host rotation detached from {self.lobby.channel}.")

    # --- Lobby Events ---
    def on_player_joined(self, event):
        player_name = event['player']
        if self.queue.add(player_name):
            log.info(f"Added '{player_name}' to host queue. Queue: {self.queue.list()}")
        if self.lobby.is_recovering:
            return
        self.update_host()

    def on_player_left(self, event):
        player_name = event['player']
        if self.queue.remove(player_name):
            log.info(f"Removed '{player_name}' from host queue. Queue: {self.queue.list()}")
        self.update_host()
        if self.lobby.host == player_name and event.get('match_in_progress'):
            # The host change that follows the match must not rotate a second time.
            log.info(f"Host '{player_name}' left mid-match. Marking host as already skipped.")
            self.has_skipped_host = True

    def on_match_started(self, event):
        self.has_skipped_host = False

    def on_settings_updated(self, event):
        lobby = self.lobby
        previous_queue = lobby.configuration.get('previous_queue')

        if lobby.is_recovering and previous_queue:
            self.queue.clear()
            for player_name in recover_queue(previous_queue, lobby.players):
                self.queue.add(player_name)
            log.info(f"Recovered old queue: {', '.join(self.queue.head(QUEUE_DISPLAY_SIZE))}")

        for player_name in lobby.players:
            if self.queue.add(player_name):
                log.info(f"Added '{player_name}' to host queue from settings.")

        # Don't skip a player if we're just restoring a previous session.
        if lobby.is_recovering:
            return

        if not self.has_skipped_host:
            self.skip_current_player()

        self.update_host()
        self.send_current_queue()

    def on_host_changed(self, event):
        if self.lobby.is_recovering:
            return
        if not self.queue:
            return
        player_name = event['player']
        if player_name != self.queue.front:
            log.info(f"'{player_name}' became host out of turn. Handing host back to '{self.queue.front}'.")
            self.lobby.send_message(format_host_command(self.queue.front))

    # --- Chat Commands ---
    def on_user_message(self, event):
        sender = event['sender']
        message = event['message']

        if message.startswith("!q") or message.startswith("!queue"):
            self.send_current_queue()
            return

        if message.startswith("!skip"):
            if self.lobby.host is not None and sender == self.lobby.host:
                log.info(f"Host '{sender}' skipped their turn.")
                self.skip_current_player()
                self.update_host()
                return

            if not self.lobby.has_player(sender):
                log.debug(f"Ignoring !skip from '{sender}' (not in lobby).")
                return

            votes_before = self.skip_vote.votes
            if self.skip_vote.vote(sender):
                log.info(f"Skip vote passed, skipping '{self.queue.front}'.")
                self.skip_current_player()
                self.update_host()
            elif self.skip_vote.votes > votes_before:
                self.lobby.send_message(f"{self.skip_vote.name} ({self.skip_vote.votes}/{self.get_votes_needed()})")

    def on_admin_message(self, event):
        message = event['message']

        if message.startswith("!forceskip"):
            self.force_skip_player()

        if message.startswith("!sethost "):
            player_name = message[len("!sethost "):].strip()
            if not player_name:
                log.debug(f"Ignoring !sethost without a player name from '{event['sender']}'.")
                return
            self.queue.move_to_front(player_name)
            log.info(f"Admin '{event['sender']}' moved '{player_name}' to the front. Queue: {self.queue.list()}")
            self.update_host()

    # --- Rotation ---
    def force_skip_player(self):
        """Skips the current host and makes the next player in the queue host instead."""
        self.skip_current_player()
        self.update_host()

    def skip_current_player(self):
        """Rotates the queue by one. Does NOT update the host by itself."""
        rotated = self.queue.rotate()
        if rotated is not None:
            log.info(f"Rotated '{rotated}' to the back. Queue: {self.queue.list()}")
        self.has_skipped_host = False
        self.skip_vote.reset()

    def update_host(self):
        """Sends !mp host for the front of the queue unless they already have it."""
        if not self.queue or self.lobby.is_recovering:
            return
        next_host = self.queue.front
        if self.lobby.host is None or self.lobby.host != next_host:
            log.info(f"Setting host to '{next_host}' (current: {self.lobby.host}).")
            self.lobby.send_message(format_host_command(next_host))

    def send_current_queue(self):
        self.lobby.send_message(format_queue_message(self.queue))

    def get_votes_needed(self):
        settings = self.lobby.configuration.get('vote_skip', {})
        eligible_voters = len(self.lobby.players)
        if self.lobby.host in self.lobby.players:
            eligible_voters -= 1
        return votes_needed(
            eligible_voters,
            settings.get('threshold_type', 'percentage'),
            settings.get('threshold_value', 51),
        )
