"""Boxes in hierarchical meshes and ordered containers of boxes.

An :class:`HBox` describes an axis-aligned range of cells `[lower, upper)` on
a fixed refinement level of one patch. The cells of level `lv` are indexed by
multi-indices `(j_1, ..., j_d)`; level `lv+1` is obtained by dyadic
refinement, so that the cell `j` on level `lv` has the children
`2*j, ..., 2*j+1` (in each coordinate) on level `lv+1`.

The identity of a box is the tuple `(patch, level, lower, upper)`. Boxes are
totally ordered by this tuple (patch first, then level, then the lower and the
upper corner lexicographically). The error annotation carried by a box is not
part of its identity.

An :class:`HBoxContainer` stores structurally distinct boxes and always
iterates over them in box order, which makes all output that is built from
it reproducible.
"""
import functools

import numpy as np

from . import utils

@functools.total_ordering
class HBox:
    """A box of cells on a given level of a given patch.

    Arguments:
        lower: the lower corner (inclusive) as a sequence of `d` integers
        upper: the upper corner (exclusive) as a sequence of `d` integers
        level (int): the refinement level, 0 being the coarsest
        patch (int): the index of the patch the box lives on
        error: an optional error annotation
    """
    __slots__ = ('patch', 'level', 'lower', 'upper', 'error')

    def __init__(self, lower, upper, level=0, patch=0, error=None):
        self.lower = tuple(int(l) for l in lower)
        self.upper = tuple(int(u) for u in upper)
        self.level = int(level)
        self.patch = int(patch)
        self.error = error
        if len(self.lower) != len(self.upper):
            raise ValueError('corners of different dimension: {}, {}'.format(self.lower, self.upper))
        if not all(l < u for (l, u) in zip(self.lower, self.upper)):
            raise ValueError('empty box {} - {}'.format(self.lower, self.upper))
        if self.level < 0:
            raise ValueError('invalid level {}'.format(self.level))

    @staticmethod
    def from_cell(cell, level=0, patch=0, error=None):
        """Create the box consisting of the single cell with multi-index `cell`."""
        return HBox(cell, tuple(c + 1 for c in cell), level=level, patch=patch, error=error)

    @property
    def key(self):
        return (self.patch, self.level, self.lower, self.upper)

    @property
    def dim(self):
        return len(self.lower)

    @property
    def shape(self):
        return tuple(u - l for (l, u) in zip(self.lower, self.upper))

    @property
    def num_cells(self):
        return int(np.prod(self.shape))

    @property
    def is_element(self):
        """True if the box consists of exactly one cell."""
        return all(s == 1 for s in self.shape)

    @property
    def cell(self):
        """The multi-index of a single-cell box."""
        assert self.is_element, 'Box consists of more than one cell'
        return self.lower

    def cells(self):
        """Return a list of all cells (on the level of the box) in the box."""
        return list(utils.box_cells(self.lower, self.upper))

    def elements(self):
        """Return the single-cell boxes which make up this box."""
        return [HBox.from_cell(c, self.level, self.patch) for c in self.cells()]

    def extents(self, level=None):
        """Return the closed extents `(lower, upper)` of the box in the index
        space of `level` (default: its own level)."""
        if level is None:
            level = self.level
        return utils.scale_extents(self.lower, self.upper, self.level, level)

    def parent(self):
        """Return the smallest box on the next coarser level which contains this box."""
        if self.level == 0:
            raise ValueError('box on level 0 has no parent')
        lo, hi = self.extents(self.level - 1)
        return HBox(lo, hi, self.level - 1, self.patch)

    def children(self):
        """Return the box covering the same region on the next finer level."""
        lo, hi = self.extents(self.level + 1)
        return HBox(lo, hi, self.level + 1, self.patch)

    def siblings(self):
        """Return all elements on this level which share the parent of this element
        (including the element itself)."""
        return self.parent().children().elements()

    def contains(self, other):
        """Check if `other` lies within this box (possibly on another level)."""
        if other.patch != self.patch:
            return False
        L = max(self.level, other.level)
        A, B = self.extents(L), other.extents(L)
        return all(alo <= blo and bhi <= ahi
                for (alo, ahi, blo, bhi) in zip(A[0], A[1], B[0], B[1]))

    def overlaps(self, other):
        """Check if the interiors of the two boxes intersect."""
        if other.patch != self.patch:
            return False
        L = max(self.level, other.level)
        return utils.open_intersect(self.extents(L), other.extents(L))

    def touches(self, other):
        """Check if the closures of the two boxes intersect, i.e., if they
        overlap or share a face, an edge or a corner."""
        if other.patch != self.patch:
            return False
        L = max(self.level, other.level)
        return utils.closed_intersect(self.extents(L), other.extents(L))

    def copy(self):
        return HBox(self.lower, self.upper, self.level, self.patch, self.error)

    def __eq__(self, other):
        if not isinstance(other, HBox):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other):
        if not isinstance(other, HBox):
            return NotImplemented
        return self.key < other.key

    def __hash__(self):
        return hash(self.key)

    def __repr__(self):
        s = 'HBox({}, {}, level={}, patch={}'.format(self.lower, self.upper, self.level, self.patch)
        if self.error is not None:
            s += ', error={:g}'.format(self.error)
        return s + ')'


def _more_informative(new, old):
    """Decide if `new` carries a more informative error than the structurally
    equal box `old`."""
    if new.error is None:
        return False
    if old.error is None:
        return True
    return new.error > old.error


class HBoxContainer:
    """An ordered set of :class:`HBox` instances.

    The boxes are stored in an arena keyed by the box identity. Iteration,
    indexing and export are always in box order. When a box is added which is
    structurally equal to a stored one, the stored box is replaced only if the
    new one carries a more informative error: a set error beats an unset one,
    and among two set errors the larger one is kept.
    """
    def __init__(self, boxes=()):
        self._boxes = dict()
        self._sorted = None
        self.update(boxes)

    def _invalidate(self):
        self._sorted = None

    def _keys(self):
        if self._sorted is None:
            self._sorted = sorted(self._boxes.keys())
        return self._sorted

    def add(self, box):
        """Add a box; returns True if the container grew."""
        old = self._boxes.get(box.key)
        if old is None:
            self._boxes[box.key] = box
            self._invalidate()
            return True
        if _more_informative(box, old):
            self._boxes[box.key] = box
        return False

    def update(self, boxes):
        for b in boxes:
            self.add(b)

    def discard(self, box):
        if self._boxes.pop(box.key, None) is not None:
            self._invalidate()

    def clear(self):
        self._boxes.clear()
        self._invalidate()

    def get(self, box):
        """Return the stored box which is structurally equal to `box`, or None."""
        return self._boxes.get(box.key)

    def __contains__(self, box):
        return box.key in self._boxes

    def __len__(self):
        return len(self._boxes)

    def __bool__(self):
        return bool(self._boxes)

    def __iter__(self):
        return (self._boxes[k] for k in self._keys())

    def __getitem__(self, i):
        return self._boxes[self._keys()[i]]

    def __eq__(self, other):
        if not isinstance(other, HBoxContainer):
            return NotImplemented
        return self._keys() == other._keys()

    def boxes(self, patch=None):
        """Return the sorted list of boxes, optionally only those on `patch`."""
        return [b for b in self if patch is None or b.patch == patch]

    def patches(self):
        """Return the sorted list of patches which have at least one box."""
        return sorted({k[0] for k in self._boxes})

    def levels(self):
        return sorted({k[1] for k in self._boxes})

    def by_patch(self):
        """Return a dict mapping each patch to the sorted list of its boxes."""
        out = dict()
        for b in self:
            out.setdefault(b.patch, []).append(b)
        return out

    def copy(self):
        out = HBoxContainer()
        out._boxes = dict(self._boxes)
        return out

    def union(self, other):
        out = self.copy()
        out.update(other)
        return out

    def difference(self, other):
        return HBoxContainer(b for b in self if b not in other)

    def intersection(self, other):
        return HBoxContainer(b for b in self if b in other)

    __or__ = union
    __sub__ = difference
    __and__ = intersection

    def as_array(self):
        """Return an integer array with one row `(patch, level, lower..., upper...)`
        per box, in box order."""
        rows = [(b.patch, b.level) + b.lower + b.upper for b in self]
        if not rows:
            return np.zeros((0, 2), dtype=int)
        return np.array(rows, dtype=int)

    def corners(self, mesh):
        """Return the lower and upper corners of all boxes in the parameter
        domain `[0,1]^d` of their patch as an array of shape `(n, 2, d)`."""
        out = []
        for b in self:
            n = np.array(mesh.patch(b.patch).numspans_on_level(b.level), dtype=float)
            out.append((np.array(b.lower) / n, np.array(b.upper) / n))
        return np.array(out)

    def write(self, fname):
        """Write the boxes as comma-separated rows `patch,level,lower...,upper...`."""
        np.savetxt(fname, self.as_array(), fmt='%d', delimiter=',')

    def __str__(self):
        lines = ['HBoxContainer with {} boxes'.format(len(self))]
        for p, boxes in self.by_patch().items():
            lines.append('  patch {}:'.format(p))
            lines.extend('    ' + repr(b) for b in boxes)
        return '\n'.join(lines)

    def __repr__(self):
        return 'HBoxContainer({!r})'.format(self.boxes())
