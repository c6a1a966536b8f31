"""Multi-patch hierarchical meshes.

A :class:`HPatchMesh` consists of a list of single-patch hierarchical meshes
(:class:`.HMesh`) and a list of interfaces which glue a side of one patch to a
side of another patch.

Sides of a patch are given as boundary specifications `(axis, side)`, where
`side` is 0 for the lower and 1 for the upper end of the parameter range along
`axis`; alternatively a boundary index `2*axis + side`. An interface

    ((p0, (axis0, side0)), (p1, (axis1, side1)), flip)

means that the side `(axis0, side0)` of patch `p0` coincides with the side
`(axis1, side1)` of patch `p1`. The remaining (tangential) axes of both patches
are matched in increasing order; `flip` is a `(d-1)`-dimensional tuple
indicating whether each tangential axis runs in opposite direction in the two
patches. Interfaces must be conforming on the coarsest level, i.e., both sides
have the same number of cells along each tangential axis.

The elements of a multi-patch mesh are enumerated patch by patch, and within
each patch in the canonical order of :class:`.HMesh`. Elements are returned as
:class:`.HBox` instances.
"""
import networkx as nx
import scipy.sparse

from .hbox import HBox
from .hmesh import HMesh

def int_to_bdspec(bdspec):
    if isinstance(bdspec, tuple) and len(bdspec) == 2:
        return bdspec
    else:
        return (bdspec // 2, bdspec % 2)

def _tangential(seq, axis):
    """Remove `axis`-component from the tuple `seq`."""
    return tuple(seq[:axis]) + tuple(seq[axis+1:])


class HPatchMesh:
    """A multi-patch mesh where every patch carries a hierarchical mesh.

    Arguments:
        patches: a sequence of :class:`.HMesh` instances or of tuples giving
            the numbers of cells per axis of each patch on the coarsest level
        interfaces: a sequence of interfaces in the format
            `(p0, bd0, p1, bd1)` or `(p0, bd0, p1, bd1, flip)`
    """
    def __init__(self, patches, interfaces=()):
        self.patches = [p if isinstance(p, HMesh) else HMesh(p) for p in patches]
        dims = {hm.dim for hm in self.patches}
        if len(dims) > 1:
            raise ValueError('all patches must have the same dimension')
        self.dim = dims.pop() if dims else 0
        self.interfaces = []
        self._intf = dict()
        for intf in interfaces:
            self.add_interface(*intf)

    @property
    def numpatches(self):
        return len(self.patches)

    def patch(self, p):
        """Return the :class:`.HMesh` of patch `p`."""
        return self.patches[p]

    def add_interface(self, p0, bd0, p1, bd1, flip=None):
        """Join the side `bd0` of patch `p0` to the side `bd1` of patch `p1`."""
        bd0, bd1 = int_to_bdspec(bd0), int_to_bdspec(bd1)
        for (p, (ax, side)) in ((p0, bd0), (p1, bd1)):
            if not (0 <= p < self.numpatches):
                raise ValueError('invalid patch index {}'.format(p))
            if not (0 <= ax < self.dim and side in (0, 1)):
                raise ValueError('invalid bdspec {} for patch {}'.format((ax, side), p))
        if (p0, bd0) == (p1, bd1):
            raise ValueError('cannot join a side to itself')
        if flip is None:
            flip = (self.dim - 1) * (False,)
        flip = tuple(bool(f) for f in flip)
        if len(flip) != self.dim - 1:
            raise ValueError('flip must have {} entries'.format(self.dim - 1))
        n0 = _tangential(self.patches[p0].numspans, bd0[0])
        n1 = _tangential(self.patches[p1].numspans, bd1[0])
        if n0 != n1:
            raise ValueError('nonconforming interface between patch {} ({} cells) and patch {} ({} cells)'
                    .format(p0, n0, p1, n1))
        for key in ((p0, bd0), (p1, bd1)):
            if key in self._intf:
                raise ValueError('side {} of patch {} already has an interface'.format(key[1], key[0]))
        self.interfaces.append(((p0, bd0), (p1, bd1), flip))
        self._intf[(p0, bd0)] = ((p1, bd1), flip)
        self._intf[(p1, bd1)] = ((p0, bd0), flip)

    def patch_graph(self):
        """Return the connectivity graph of the patches as a :class:`networkx.Graph`."""
        G = nx.Graph()
        G.add_nodes_from(range(self.numpatches))
        G.add_edges_from((p0, p1) for ((p0, _), (p1, _), _) in self.interfaces)
        return G

    def is_connected(self):
        return self.numpatches > 0 and nx.is_connected(self.patch_graph())

    def numel(self, patch=None):
        """Return the number of elements on `patch`, or in total if no patch is given."""
        if patch is not None:
            return self.patches[patch].numel
        return sum(hm.numel for hm in self.patches)

    def elements(self, patch=None):
        """Return the elements of `patch` (or of all patches, patch by patch)
        as a list of :class:`.HBox` instances with their level."""
        if patch is None:
            return [b for p in range(self.numpatches) for b in self.elements(p)]
        return [HBox.from_cell(c, lv, patch)
                for (lv, c) in self.patches[patch].active_cells(flat=True)]

    def is_element(self, box):
        """Check if `box` is an element (an active cell) of this mesh."""
        if not (0 <= box.patch < self.numpatches and box.is_element):
            return False
        return self.patches[box.patch].is_active(box.level, box.cell)

    def refine_elements(self, boxes):
        """Subdivide the given elements into their children on the next finer level."""
        marked = dict()
        for b in boxes:
            marked.setdefault(b.patch, dict()).setdefault(b.level, set()).add(b.cell)
        for (p, m) in marked.items():
            self.patches[p].refine(m)

    def coarsen_elements(self, boxes):
        """Merge the families of the given elements into their parents."""
        marked = dict()
        for b in boxes:
            parent = b.parent()
            marked.setdefault(b.patch, dict()).setdefault(parent.level, set()).add(parent.cell)
        for (p, m) in marked.items():
            self.patches[p].coarsen(m)

    def subdivide(self, box):
        """Subdivide a single element into its children."""
        self.refine_elements([box])

    def merge(self, box):
        """Merge a single element together with its siblings into the parent."""
        self.coarsen_elements([box])

    def family_is_active(self, box):
        """Check if all siblings of the element `box` (sharing the same parent) are elements."""
        return box.level > 0 and all(self.is_element(s) for s in box.siblings())

    def _map_across(self, box, bd, target):
        """Map the closed region of `box`, which touches the side `bd` of its
        patch, to the corresponding side on the other patch of the interface."""
        (p1, (ax1, side1)), flip = target
        ax0 = bd[0]
        n1 = self.patches[p1].numspans_on_level(box.level)
        lower, upper = [], []
        for (lo, hi, n, f) in zip(_tangential(box.lower, ax0), _tangential(box.upper, ax0),
                _tangential(n1, ax1), flip):
            if f:
                lo, hi = n - hi, n - lo
            lower.append(lo)
            upper.append(hi)
        normal = 0 if side1 == 0 else n1[ax1]
        lower.insert(ax1, normal)
        upper.insert(ax1, normal)
        return p1, tuple(lower), tuple(upper)

    def neighbors(self, box):
        """Return the sorted list of elements which touch `box` (share a face,
        an edge or a corner with it) but do not overlap it, on the same patch
        or on patches joined to it by an interface."""
        out = set()
        hm = self.patches[box.patch]
        for (lv, cells) in hm.cells_touching(box.level, box.lower, box.upper).items():
            for c in cells:
                nb = HBox.from_cell(c, lv, box.patch)
                if not box.overlaps(nb):
                    out.add(nb)
        n = self.patches[box.patch].numspans_on_level(box.level)
        for ax in range(self.dim):
            for side in (0, 1):
                target = self._intf.get((box.patch, (ax, side)))
                if target is None:
                    continue
                if (side == 0 and box.lower[ax] != 0) or (side == 1 and box.upper[ax] != n[ax]):
                    continue
                p1, lower, upper = self._map_across(box, (ax, side), target)
                for (lv, cells) in self.patches[p1].cells_touching(box.level, lower, upper).items():
                    out.update(HBox.from_cell(c, lv, p1) for c in cells)
        out.discard(box)
        return sorted(out)

    def element_graph(self):
        """Return the graph of elements, joined by an edge if they are neighbors,
        as a :class:`networkx.Graph` with :class:`.HBox` nodes."""
        G = nx.Graph()
        for b in self.elements():
            G.add_node(b, level=b.level)
            G.add_edges_from((b, nb) for nb in self.neighbors(b) if b < nb)
        return G

    def adjacency_matrix(self, index_map):
        """Return the element adjacency matrix as a sparse CSR matrix whose
        rows and columns follow the order of `index_map`."""
        n = len(index_map)
        I, J = [], []
        for (a, b) in self.element_graph().edges():
            i, j = index_map.index_of(a), index_map.index_of(b)
            I += [i, j]
            J += [j, i]
        return scipy.sparse.coo_matrix(([1] * len(I), (I, J)), shape=(n, n), dtype=int).tocsr()

    def max_jump(self):
        """Return the maximum level difference between neighboring elements."""
        return max((abs(a.level - b.level) for (a, b) in self.element_graph().edges()),
                default=0)

    def is_admissible(self, m):
        """Check if neighboring elements differ by at most `m` levels."""
        return self.max_jump() <= m

    def copy(self):
        out = HPatchMesh([hm.copy() for hm in self.patches])
        for ((p0, bd0), (p1, bd1), flip) in self.interfaces:
            out.add_interface(p0, bd0, p1, bd1, flip)
        return out
