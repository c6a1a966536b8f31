"""Hierarchical meshes built on a sequence of dyadically refined tensor product meshes.

A hierarchical mesh over a single patch is described by a coarsest tensor
product mesh with `numspans[k]` cells along the `k`-th axis. Level `lv` of the
hierarchy is the tensor product mesh with `2**lv * numspans[k]` cells along
each axis. On each level, some cells are *active* (they are elements of the
hierarchical mesh) and some are *deactivated* (they have been refined and are
covered by active cells on finer levels).

Cells are indexed by multi-indices `(j_1, ..., j_d)` on their level. The
**canonical order** of the active cells is: first all active cells on the
coarsest level, then all active cells on the next finer level, and so on,
each level ordered lexicographically by multi-index.

The implementation follows the approach of [GV2018]_.

.. [GV2018] `Garau, Vázquez: "Algorithms for the implementation of adaptive
    isogeometric methods using hierarchical B-splines", 2018.
    <https://doi.org/10.1016/j.apnum.2017.08.006>`_
"""
import itertools

import numpy as np

from . import utils

class TPMesh:
    """A uniform tensor product mesh with `numspans[k]` cells along the `k`-th axis.

    The mesh covers the parameter domain `[0,1]^d`.
    """
    def __init__(self, numspans):
        self.numspans = tuple(int(n) for n in numspans)
        assert all(n > 0 for n in self.numspans), 'Invalid number of cells'
        self.dim = len(self.numspans)
        self.numel = int(np.prod(self.numspans))

    def __eq__(self, other):
        return self.numspans == other.numspans

    def refine(self):
        return TPMesh([2 * n for n in self.numspans])

    def cells(self):
        """Return a list of all cells in this mesh."""
        return list(itertools.product(
            *(range(n) for n in self.numspans)))

    def cells_touching(self, lower, upper):
        """Return all cells whose closure intersects the closed box `[lower, upper]`."""
        return list(itertools.product(
            *(range(max(lo - 1, 0), min(hi, n - 1) + 1)
                for (lo, hi, n) in zip(lower, upper, self.numspans))))


class HMesh:
    """A hierarchical mesh built on a sequence of uniformly refined tensor product meshes.

    Arguments:
        mesh: either a :class:`TPMesh` or a sequence of the numbers of cells
            per axis on the coarsest level
    """
    def __init__(self, mesh):
        if not isinstance(mesh, TPMesh):
            mesh = TPMesh(mesh)
        self.dim = mesh.dim
        self.meshes = [mesh]
        self.active = [set(mesh.cells())]
        self.deactivated = [set()]

    @property
    def numspans(self):
        """The number of cells per axis on the coarsest level."""
        return self.meshes[0].numspans

    def numspans_on_level(self, lv):
        return tuple(n * 2**lv for n in self.numspans)

    @property
    def numlevels(self):
        """The number of levels in this hierarchical mesh."""
        return len(self.meshes)

    @property
    def numel(self):
        """The total number of active cells in the hierarchical mesh."""
        return sum(len(ac) for ac in self.active)

    @property
    def maxlevel(self):
        """The finest level which contains active cells."""
        return max(lv for lv in range(self.numlevels) if self.active[lv])

    def add_level(self):
        self.meshes.append(self.meshes[-1].refine())
        self.active.append(set())
        self.deactivated.append(set())

    def ensure_levels(self, L):
        """Make sure that the hierarchical mesh has at least `L` levels."""
        while len(self.meshes) < L:
            self.add_level()

    def _trim_levels(self):
        while len(self.meshes) > 1 and not (self.active[-1] or self.deactivated[-1]):
            self.meshes.pop()
            self.active.pop()
            self.deactivated.pop()

    def active_cells(self, lv=None, flat=False):
        """If `lv` is specified, return the set of active cells on that level.
        Otherwise, return a list containing, for each level, the set of active cells.

        If `lv=None` and `flat=True`, return a flat list of `(lv, (j_1, ..., j_d))`
        pairs of all active cells in canonical order.
        """
        if lv is not None:
            return self.active[lv] if lv < self.numlevels else set()
        else:
            if flat:
                return [(l, ac)
                        for l in range(self.numlevels)
                        for ac in sorted(self.active[l])]
            else:
                return list(self.active)

    def is_active(self, lv, c):
        return 0 <= lv < self.numlevels and c in self.active[lv]

    def cell_children(self, lv, cells):
        assert 0 <= lv < len(self.meshes) - 1, 'Invalid level'
        children = []
        for c in cells:
            children.extend(itertools.product(
                *(range(2*ci, 2*(ci + 1)) for ci in c)))
        return children

    def cell_parent(self, lv, cells):
        assert 1 <= lv < len(self.meshes), 'Invalid level'
        return {tuple(ci // 2 for ci in c) for c in cells}

    def _TP_to_HMesh_cells_up(self, lv, cells):
        """Return dictionary of hierarchical cells of levels >= `lv` contributing to the
        `cells` of level `lv`."""
        assert 0 <= lv < len(self.meshes), 'Invalid level'
        out = dict()
        aux_cells = set(cells)
        L = len(self.meshes)
        for l in range(lv, L):
            out[l] = aux_cells & self.active[l]
            aux_cells -= self.active[l]
            if l < L - 1:
                aux_cells = set(self.cell_children(l, aux_cells))
        assert not aux_cells, 'Invalid cells detected: {}'.format(aux_cells)
        return out

    def _TP_to_HMesh_cells_down(self, lv, cells):
        """Return dictionary of hierarchical cells of level <= `lv` contributing to the
        `cells` of level `lv`."""
        assert 0 <= lv < len(self.meshes), 'Invalid level'
        out = dict()
        aux_cells = set(cells)
        for l in reversed(range(lv + 1)):
            out[l] = aux_cells & self.active[l]
            aux_cells -= self.active[l]
            if l > 0:
                aux_cells = set(self.cell_parent(l, aux_cells))
        assert not aux_cells, 'Invalid cells detected: {}'.format(aux_cells)
        return out

    def _TP_to_HMesh_cells(self, lv, cells):
        """Return dictionary of hierarchical cells contributing to the
        `cells` of level `lv`."""
        assert 0 <= lv < len(self.meshes), 'Invalid level'
        cells = set(cells)
        act_deact_lv = self.active[lv] | self.deactivated[lv]
        out_up   = self._TP_to_HMesh_cells_up(lv,   cells & act_deact_lv)
        out_down = self._TP_to_HMesh_cells_down(lv, cells - act_deact_lv)
        return utils.dict_union(out_down, out_up)

    def hmesh_cells(self, cells):
        """Return the smallest dictionary of active hierarchical cells containing `cells`.

        `cells` is either a dict or a list indexed by level containing
        sequences of cells on that level.
        """
        if isinstance(cells, dict):
            items = cells.items()
        else:
            items = enumerate(cells)
        out = dict()
        for lv, cls in items:
            if cls:
                out = utils.dict_union(out, self._TP_to_HMesh_cells(lv, cls))
        return utils.drop_empty_items(out)

    def cells_touching(self, lv, lower, upper):
        """Return the active cells, as a dict of sets per level, whose closure
        intersects the closed box `[lower, upper]` given in the index space of
        level `lv`.

        The box may be degenerate (e.g., a face with `lower[k] == upper[k]`).
        """
        search_lv = min(lv, self.numlevels - 1)
        lo, hi = utils.scale_extents(lower, upper, lv, search_lv)
        candidates = self.hmesh_cells({search_lv: self.meshes[search_lv].cells_touching(lo, hi)})
        out = dict()
        for (l, cells) in candidates.items():
            L = max(l, lv)
            region = utils.scale_extents(lower, upper, lv, L)
            found = {c for c in cells
                    if utils.closed_intersect(region,
                        utils.scale_extents(c, tuple(ci + 1 for ci in c), l, L))}
            if found:
                out[l] = found
        return out

    def refine(self, marked):
        """Refine the given active cells; `marked` is a dictionary which has
        the levels as indices and the collection of marked cells on that level
        as values.

        Returns:
            dict: the newly activated cells per level
        """
        marked = utils.drop_empty_items(marked)
        if not marked:
            return dict()
        # if necessary, add new fine levels to the data structure
        # NB: if refining on lv 0, we need 2 levels (0 and 1) -- hence the +2
        max_lv = max(marked.keys())
        self.ensure_levels(max_lv + 2)

        new_cells = dict()
        for lv in range(len(self.meshes) - 1):
            cells = set(marked.get(lv, []))
            assert cells <= self.active[lv], 'Can only refine active cells'
            # deactivate refined cells
            self.active[lv] -= cells
            self.deactivated[lv] |= cells
            # add children
            new_cells[lv+1] = self.cell_children(lv, cells)
            self.active[lv+1] |= set(new_cells[lv+1])
        return utils.drop_empty_items(new_cells)

    def coarsen(self, marked):
        """Reactivate the given deactivated cells, removing their children;
        `marked` is a dictionary which has the levels as indices and the
        collection of parent cells on that level as values. All children of
        each parent cell must be active.

        Returns:
            dict: the removed cells per level
        """
        removed = dict()
        for lv in sorted(utils.drop_empty_items(marked).keys()):
            cells = set(marked[lv])
            assert cells <= self.deactivated[lv], 'Can only coarsen deactivated cells'
            children = set(self.cell_children(lv, cells))
            assert children <= self.active[lv+1], 'Can only coarsen cells with active children'
            self.active[lv+1] -= children
            self.active[lv] |= cells
            self.deactivated[lv] -= cells
            removed[lv+1] = children
        self._trim_levels()
        return removed

    def copy(self):
        out = HMesh(self.meshes[0])
        out.meshes = list(self.meshes)
        out.active = [set(a) for a in self.active]
        out.deactivated = [set(d) for d in self.deactivated]
        return out
