"""
Read-only views derived from server snapshots.

These are pure functions. The server is authoritative for both the queue and
the vote tally, so every update replaces the previous view instead of being
merged into it.
"""

from typing import Iterable, Mapping

from .protocol.messages import MapVotesUpdate, QueueUpdate
from .types import MapVoteTally, QueueSnapshot


def queue_snapshot(update: QueueUpdate) -> QueueSnapshot:
    """The queue exactly as the server listed it, in server order."""
    return tuple(update.players)


def empty_tally(known_maps: Iterable[str]) -> MapVoteTally:
    return {map_name: 0 for map_name in known_maps}


def vote_tally(
    previous: Mapping[str, int],
    update: MapVotesUpdate,
    known_maps: Iterable[str]
) -> MapVoteTally:
    """
    Build the tally that replaces `previous`.

    Only maps in `known_maps` are kept, in that order. Maps missing from the
    update keep their previous count and unknown maps in the update are
    ignored.

    # Examples
    >>> vote_tally({"dust2": 2}, MapVotesUpdate({"nuke": 1, "foo": 9}),
    ...            ["dust2", "nuke"])
    {'dust2': 2, 'nuke': 1}
    """
    tally = {
        map_name: previous.get(map_name, 0)
        for map_name in known_maps
    }
    tally.update(
        (map_name, count)
        for map_name, count in update.votes.items()
        if map_name in tally
    )
    return tally
