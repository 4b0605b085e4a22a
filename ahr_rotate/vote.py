import logging
import math

log = logging.getLogger("PlayerVote")

THRESHOLD_PERCENTAGE = "percentage"
THRESHOLD_FIXED = "fixed"


def votes_needed(eligible_voters, threshold_type=THRESHOLD_PERCENTAGE, threshold_value=51):
    """Calculates the number of votes required to pass, never less than 1."""
    if eligible_voters < 1: return 1
    try:
        if threshold_type == THRESHOLD_FIXED:
            needed = int(threshold_value)
            return max(1, min(needed, eligible_voters))
        if threshold_type != THRESHOLD_PERCENTAGE:
            log.warning(f"Invalid vote threshold_type '{threshold_type}'. Defaulting to percentage.")
        needed = math.ceil(eligible_voters * (float(threshold_value) / 100.0))
        return max(1, int(needed))
    except (ValueError, TypeError):
        log.error(f"Invalid threshold_value '{threshold_value}' for type '{threshold_type}'. Defaulting to 1 vote needed.")
        return 1


class PlayerVote:
    """Distinct voters for a single yes/no decision.

    ``threshold`` is called on every vote, so the required count follows
    players joining or leaving while the vote is open.
    """

    def __init__(self, name, threshold):
        self.name = name
        self.threshold = threshold
        self.voters = set()

    def vote(self, voter):
        """Records voter. Returns True exactly once, when the vote passes; the tally is then cleared."""
        if voter in self.voters:
            log.debug(f"[{self.name}] '{voter}' already voted ({len(self.voters)}/{self.threshold()}).")
            return False
        self.voters.add(voter)
        needed = self.threshold()
        log.info(f"[{self.name}] '{voter}' voted. Votes: {len(self.voters)}/{needed}")
        if len(self.voters) >= needed:
            log.info(f"[{self.name}] Vote passed with {len(self.voters)}/{needed} votes.")
            self.reset()
            return True
        return False

    def reset(self):
        if self.voters:
            log.debug(f"[{self.name}] Clearing {len(self.voters)} vote(s).")
        self.voters.clear()

    @property
    def votes(self):
        return len(self.voters)
