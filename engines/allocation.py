"""
Capacity Planner — Proportional Allocation Engine
Largest-remainder apportionment of integer pools across weighted entities.

Shares are computed with exact fractions, so the distributed total always
equals the pool and no entity is more than one unit away from its exact share.
"""
import logging
import math
from fractions import Fraction


def _valid_weight(w):
    return isinstance(w, (int, float)) and not isinstance(w, bool) and math.isfinite(w) and w >= 0


def _valid_pool(p):
    return (isinstance(p, (int, float)) and not isinstance(p, bool)
            and math.isfinite(p) and p >= 0 and float(p).is_integer())


def largest_remainder(weights, pool):
    """
    Apportion `pool` whole units across `weights`.

    Every entity first gets floor(pool × w / Σw). The units left over go one
    each to the entities with the largest fractional remainder; equal
    remainders are served in input order.

    Args:
        weights: non-negative numbers with a positive sum
        pool: non-negative integer

    Returns:
        list of ints parallel to `weights`, summing to `pool`

    Raises:
        ValueError: when the weights do not sum to a positive number
    """
    fracs = [Fraction(w) for w in weights]
    total = sum(fracs)
    if total <= 0:
        raise ValueError(f"weights must have a positive sum, got {total}")
    exact = [pool * w / total for w in fracs]
    floors = [math.floor(s) for s in exact]
    leftover = pool - sum(floors)
    # sorted() is stable, so ties keep input order
    order = sorted(range(len(exact)), key=lambda i: -(exact[i] - floors[i]))
    for i in order[:leftover]:
        floors[i] += 1
    return floors


def _not_allocable(reason, keys):
    return {
        'allocated': False, 'reason': reason, 'keys': keys,
        'units': None, 'budget': None, 'totalWeight': 0, 'byKey': {},
    }


def allocate_proportional(entities, unit_pool, budget_pool, excluded=()):
    """
    Distribute a unit pool and a budget pool across weighted entities.

    Args:
        entities: list of {'entityKey', 'weight'}; a None weight counts as 0
        unit_pool: whole units to hand out (e.g. accounts)
        budget_pool: whole currency units to hand out (e.g. TAM)
        excluded: entity keys that never take part (e.g. an unassigned bucket);
                  they get 0 of both pools, do not count towards Σw and
                  their weights are not validated

    Returns:
        dict with 'allocated'. When True, 'units' and 'budget' are lists
        parallel to `entities`. When False, 'reason' is one of
        'zero_total_weight', 'invalid_weight', 'invalid_pool' and nothing was
        allocated (this is not the same as everyone getting 0).
    """
    keys = [e.get('entityKey') for e in entities]
    excluded = set(excluded)
    weights = []
    for e in entities:
        if e.get('entityKey') in excluded:
            weights.append(0)
            continue
        w = e.get('weight')
        w = 0 if w is None else w
        if not _valid_weight(w):
            logging.warning(f"allocate_proportional: invalid weight {w!r} for '{e.get('entityKey')}'")
            return _not_allocable('invalid_weight', keys)
        weights.append(w)
    if not _valid_pool(unit_pool) or not _valid_pool(budget_pool):
        logging.warning(f"allocate_proportional: invalid pool sizes units={unit_pool!r} budget={budget_pool!r}")
        return _not_allocable('invalid_pool', keys)

    active = [i for i, k in enumerate(keys) if k not in excluded]
    active_weights = [weights[i] for i in active]
    if sum(Fraction(w) for w in active_weights) == 0:
        logging.warning("allocate_proportional: total weight is 0 — allocation skipped")
        return _not_allocable('zero_total_weight', keys)

    unit_shares = largest_remainder(active_weights, int(unit_pool))
    budget_shares = largest_remainder(active_weights, int(budget_pool))

    units = [0] * len(entities)
    budget = [0] * len(entities)
    for pos, i in enumerate(active):
        units[i] = unit_shares[pos]
        budget[i] = budget_shares[pos]

    return {
        'allocated': True, 'reason': None, 'keys': keys,
        'units': units, 'budget': budget,
        'totalWeight': sum(active_weights),
        'byKey': {k: {'units': units[i], 'budget': budget[i]} for i, k in enumerate(keys)},
    }
