import itertools

def drop_empty_items(d):
    """Returns a copy of the dict `d` with entries with empty values removed"""
    return {lv: c for (lv, c) in d.items() if c}

def dict_union(dA, dB):
    """Takes two dicts of sets and returns a new dict `d` where `d[k]` is the
    union of `dA[k]` and `dB[k]`. Non-existent keys are treated as the empty set.
    """
    return { k: dA.get(k, set()) | dB.get(k, set())
            for k in dA.keys() | dB.keys() }

def box_cells(lower, upper):
    """Return an iterator over all multi-indices in the half-open box
    `[lower, upper)`."""
    return itertools.product(*(range(lo, hi) for (lo, hi) in zip(lower, upper)))

def scale_extents(lower, upper, lv, target):
    """Scale the closed extents `[lower, upper]` of a box on level `lv` to
    the index space of level `target` (dyadic refinement)."""
    if target >= lv:
        f = 2 ** (target - lv)
        return tuple(lo * f for lo in lower), tuple(hi * f for hi in upper)
    else:
        f = 2 ** (lv - target)
        return tuple(lo // f for lo in lower), tuple(-(-hi // f) for hi in upper)

def closed_intersect(A, B):
    """Check if the closed boxes `A = (lower, upper)` and `B` intersect,
    i.e., share at least a point."""
    return all(alo <= bhi and blo <= ahi
            for (alo, ahi, blo, bhi) in zip(A[0], A[1], B[0], B[1]))

def open_intersect(A, B):
    """Check if the open boxes `A = (lower, upper)` and `B` intersect."""
    return all(alo < bhi and blo < ahi
            for (alo, ahi, blo, bhi) in zip(A[0], A[1], B[0], B[1]))


class BijectiveIndex:
    """Maps a list of values to consecutive indices in the range `0, ..., len(values) - 1`
    and allows reverse lookup of the index.
    """
    def __init__(self, values):
        self.values = list(values)
        self._index = dict()
        for (i, v) in enumerate(self.values):
            if v in self._index:
                raise ValueError('duplicate value {} in index'.format(v))
            self._index[v] = i

    def __len__(self):
        return len(self.values)

    def __getitem__(self, i):
        return self.values[i]

    def __iter__(self):
        return iter(self.values)

    def __contains__(self, v):
        return v in self._index

    def index(self, v):
        return self._index[v]
