"""
Rivalry graphs: who each player is compared against when shares are split.

Graphs are plain dicts of player -> list of rivals and are always symmetric.
"""

import random
from typing import Dict, Iterable, List, Optional

from .errors import NotFoundError, ValidationError


def round_robin(players: Iterable[str]) -> Dict[str, List[str]]:
    """Every player is a rival of every other player."""
    names = list(players)
    return {name: [other for other in names if other != name] for name in names}


def pairing(players: Iterable[str], rng: Optional[random.Random] = None) -> Dict[str, List[str]]:
    """
    Shuffle, then mirror-match: first with last, second with second-last...

    With an odd count the middle player is left over. It takes over the
    innermost pair, so it ends up with two rivals and each of them with one.
    """
    names = list(players)
    (rng or random).shuffle(names)

    rivalries: Dict[str, List[str]] = {name: [] for name in names}
    half = len(names) // 2
    for i in range(half):
        first, last = names[i], names[-1 - i]
        rivalries[first] = [last]
        rivalries[last] = [first]

    if len(names) % 2 == 1 and half > 0:
        middle = names[half]
        inner_first, inner_last = names[half - 1], names[half + 1]
        rivalries[inner_first] = [middle]
        rivalries[inner_last] = [middle]
        rivalries[middle] = [inner_first, inner_last]

    return rivalries


def symmetrize(rivalries: Dict[str, List[str]], players: Iterable[str]) -> Dict[str, List[str]]:
    """
    Validate an admin-supplied graph and close it under symmetry.

    Raises NotFoundError for unknown names and ValidationError for a
    player named as its own rival.
    """
    known = set(players)
    result: Dict[str, List[str]] = {}

    for player, rivals in rivalries.items():
        if player not in known:
            raise NotFoundError(f"Unknown player in rivalries: {player}")
        for rival in rivals:
            if rival not in known:
                raise NotFoundError(f"Unknown rival for {player}: {rival}")
            if rival == player:
                raise ValidationError(f"Player {player} cannot be their own rival")
            for a, b in ((player, rival), (rival, player)):
                bucket = result.setdefault(a, [])
                if b not in bucket:
                    bucket.append(b)

    return result


def _link(graph: Dict[str, List[str]], a: str, b: str) -> None:
    for x, y in ((a, b), (b, a)):
        bucket = graph.setdefault(x, [])
        if y not in bucket:
            bucket.append(y)


def attach_players(rivalries: Dict[str, List[str]], players: Iterable[str], newcomers: Iterable[str],
                   paired: bool = False, rng: Optional[random.Random] = None) -> Dict[str, List[str]]:
    """
    Give players missing from a kept graph some rivals, both ways.

    Unpaired graphs link each newcomer with every other player. Paired
    graphs pair newcomers among themselves; a single newcomer joins an
    existing pair and the three become mutual rivals.
    """
    names = list(players)
    graph = {
        player: [r for r in rivals if r in names]
        for player, rivals in rivalries.items()
        if player in names
    }
    newcomers = [n for n in newcomers if n in names]

    if not paired:
        for newcomer in newcomers:
            for other in names:
                if other != newcomer:
                    _link(graph, newcomer, other)
    elif len(newcomers) == 1:
        newcomer = newcomers[0]
        settled = [p for p in names if p != newcomer and graph.get(p)]
        if settled:
            anchor = (rng or random).choice(settled)
            for other in [anchor] + graph[anchor]:
                _link(graph, newcomer, other)
    else:
        for player, rivals in pairing(newcomers, rng).items():
            for rival in rivals:
                _link(graph, player, rival)

    for name in names:
        graph.setdefault(name, [])
    return graph


def without_player(rivalries: Dict[str, List[str]], name: str) -> Dict[str, List[str]]:
    """Drop a player and every edge pointing at it."""
    return {
        player: [rival for rival in rivals if rival != name]
        for player, rivals in rivalries.items()
        if player != name
    }


def is_symmetric(rivalries: Dict[str, List[str]]) -> bool:
    return all(
        player in rivalries.get(rival, [])
        for player, rivals in rivalries.items()
        for rival in rivals
    )
