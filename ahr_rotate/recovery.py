import logging

log = logging.getLogger("Recovery")

SNAPSHOT_SEPARATOR = ","


def snapshot_queue(queue):
    """Comma-joined queue order, as stored in the 'previous_queue' config key."""
    return SNAPSHOT_SEPARATOR.join(queue)


def recover_queue(snapshot, present_players):
    """Names from snapshot that are still present, in snapshot order, without duplicates."""
    if not snapshot:
        return []
    present = set(present_players)
    recovered = []
    for player_name in snapshot.split(SNAPSHOT_SEPARATOR):
        if not player_name:
            continue
        if player_name in present and player_name not in recovered:
            recovered.append(player_name)
    dropped = [p for p in snapshot.split(SNAPSHOT_SEPARATOR) if p and p not in present]
    if dropped:
        log.debug(f"Snapshot players no longer present: {dropped}")
    return recovered
