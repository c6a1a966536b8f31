"""Marking strategies for adaptive refinement and coarsening.

All functions in this module operate on flat arrays of non-negative error
indicators and return the (sorted) positions of the marked entries. Ties
between equal errors are broken by an integer array `ranks`, which gives the
position of each entry in a fixed total order (for element errors, the box
order); the input order of the entries never influences the result.

With `coarsen=True` the roles of large and small errors are reversed: the
entries with the smallest errors are marked first.
"""
import math

import numpy as np

THRESHOLD = 'threshold'
PERCENTAGE = 'percentage'
FRACTION = 'fraction'

RULES = (THRESHOLD, PERCENTAGE, FRACTION)
_RULE_IDS = {1: THRESHOLD, 2: PERCENTAGE, 3: FRACTION}

def parse_rule(rule):
    """Convert a rule given as a name or as an integer id (1: threshold,
    2: percentage, 3: fraction) to its name."""
    if isinstance(rule, str):
        r = rule.lower()
        if r in RULES:
            return r
    elif isinstance(rule, (int, np.integer)) and not isinstance(rule, bool):
        if int(rule) in _RULE_IDS:
            return _RULE_IDS[int(rule)]
    raise ValueError('unknown marking rule {!r}'.format(rule))

def _ranks(x, ranks):
    if ranks is None:
        return np.arange(len(x))
    ranks = np.asarray(ranks)
    assert ranks.shape == x.shape, 'ranks must have the same shape as the errors'
    return ranks

def sort_permutation(x, ranks=None, coarsen=False):
    """Return the permutation which sorts `x` descending (ascending if
    `coarsen`), breaking ties by ascending `ranks`."""
    x = np.asarray(x, dtype=float)
    ranks = _ranks(x, ranks)
    # np.lexsort sorts by the last key first
    return np.lexsort((ranks, x if coarsen else -x))

################################################################################
# Marking rules
################################################################################

def threshold_mark(x, theta, coarsen=False):
    """Mark all entries with `x > theta * max(x)` (`x < theta * max(x)` if `coarsen`)."""
    x = np.asarray(x, dtype=float)
    if x.size == 0:
        return np.zeros(0, dtype=int)
    bound = theta * x.max()
    return np.flatnonzero(x < bound if coarsen else x > bound)

def percentage_mark(x, theta, ranks=None, coarsen=False):
    """Mark the `floor(theta * len(x))` entries with the largest errors
    (smallest if `coarsen`).

    Rounding down guarantees that at most the fraction `theta` of the entries
    is marked."""
    x = np.asarray(x, dtype=float)
    n = int(math.floor(theta * len(x) + 1e-10))
    idx = sort_permutation(x, ranks, coarsen=coarsen)[:n]
    return np.sort(idx)

def doerfler_mark(x, theta, ranks=None, coarsen=False):
    """Given an array of errors `x`, return a minimal array of indices such that
    the indexed values of x sum up to at least `theta * sum(x)`.

    The entries are taken in order of decreasing error (increasing if
    `coarsen`), and the shortest prefix which reaches the target is marked.
    For `theta == 0` or vanishing errors, nothing is marked.
    """
    x = np.asarray(x, dtype=float)
    if x.size == 0:
        return np.zeros(0, dtype=int)
    idx = sort_permutation(x, ranks, coarsen=coarsen)
    S = np.cumsum(x[idx])
    target = theta * S[-1]
    if target <= 0:
        return np.zeros(0, dtype=int)
    k = np.searchsorted(S, target, side='left')
    return np.sort(idx[:min(k, len(idx) - 1) + 1])

def mark(x, rule, theta, ranks=None, coarsen=False):
    """Mark entries of the error array `x` according to `rule`, one of
    ``'threshold'``, ``'percentage'``, ``'fraction'``, with parameter `theta`."""
    rule = parse_rule(rule)
    if not 0 <= theta <= 1:
        raise ValueError('marking parameter must lie in [0,1], got {}'.format(theta))
    if rule == THRESHOLD:
        return threshold_mark(x, theta, coarsen=coarsen)
    elif rule == PERCENTAGE:
        return percentage_mark(x, theta, ranks=ranks, coarsen=coarsen)
    else:
        return doerfler_mark(x, theta, ranks=ranks, coarsen=coarsen)
