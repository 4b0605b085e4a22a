from collections import deque
from itertools import islice


class HostQueue:
    """Ordered, duplicate-free list of player names. Front of the queue is the intended host."""

    def __init__(self, players=()):
        self._players = deque()
        for player in players:
            self.add(player)

    def add(self, player_name):
        if player_name in self._players:
            return False
        self._players.append(player_name)
        return True

    def remove(self, player_name):
        if player_name not in self._players:
            return False
        self._players.remove(player_name)
        return True

    def move_to_front(self, player_name):
        """Puts player_name at index 0, dropping any earlier position."""
        if player_name in self._players:
            self._players.remove(player_name)
        self._players.appendleft(player_name)

    def rotate(self):
        """Moves the front player to the back. Returns the rotated player, or None if nothing moved."""
        if len(self._players) < 2:
            return None
        player_name = self._players.popleft()
        self._players.append(player_name)
        return player_name

    def clear(self):
        self._players.clear()

    @property
    def front(self):
        return self._players[0] if self._players else None

    def head(self, count):
        return list(islice(self._players, count))

    def list(self):
        return list(self._players)

    def __len__(self):
        return len(self._players)

    def __bool__(self):
        return bool(self._players)

    def __iter__(self):
        return iter(list(self._players))

    def __contains__(self, player_name):
        return player_name in self._players

    def __repr__(self):
        return f"HostQueue({list(self._players)!r})"
