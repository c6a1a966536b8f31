"""Adaptive refinement and coarsening of hierarchical multi-patch meshes.

The main class is :class:`AdaptiveMeshing`. It is constructed for a mesh
(usually a :class:`.HPatchMesh`) and aligns flat error vectors, with one
entry per element in the order of :class:`.IndexMap`, with the elements of
the mesh. One adaptive step consists of

1. marking elements for refinement (:meth:`AdaptiveMeshing.mark_ref_into`),
2. marking elements for coarsening (:meth:`AdaptiveMeshing.mark_crs_into`);
   elements marked for refinement are never marked for coarsening,
3. applying the marks to the mesh (:meth:`AdaptiveMeshing.refine`,
   :meth:`AdaptiveMeshing.unrefine`),
4. rebuilding the index maps for the changed mesh
   (:meth:`AdaptiveMeshing.rebuild`).

If the ``Admissible`` option is set, the marked sets are modified such that
the level difference between any two neighboring elements stays at most
``m`` (the ``Jump`` option): sets marked for refinement are extended by the
neighbors which would otherwise be too coarse, and families marked for
coarsening are dropped if merging them would leave a neighbor too fine.

Options are stored in the dict :attr:`AdaptiveMeshing.options`:

==================== ==========================================  ============
key                  meaning                                      default
==================== ==========================================  ============
``RefineRule``       ``'threshold'``, ``'percentage'`` or         ``'fraction'``
                     ``'fraction'`` (or 1, 2, 3)
``CoarsenRule``      same, for coarsening                          ``'fraction'``
``RefineParam``      marking parameter in `[0,1]`                  0.1
``CoarsenParam``     marking parameter in `[0,1]`                  0.1
``RefineExtension``  rings of neighbors added to refinement marks  0
``CoarsenExtension`` rings of neighbors added to coarsening marks  0
``MaxLevel``         finest level which may be created             10
``Admissible``       preserve admissibility of the mesh            True
``Jump``             maximal level difference of neighbors `m`     2
``Verbose``          verbosity level                               0
==================== ==========================================  ============
"""
import numbers

import numpy as np

from . import marking
from .hbox import HBox, HBoxContainer
from .indexmap import IndexMap
from .predicates import (check_box, MaxLevelCheck, MinLevelCheck, OverlapCheck,
        CompleteFamilyCheck, AdmissibleRefineCheck, AdmissibleCoarsenCheck)

_OPTION_KEYS = {
    'refine_rule':          'RefineRule',
    'coarsen_rule':         'CoarsenRule',
    'refine_param':         'RefineParam',
    'coarsen_param':        'CoarsenParam',
    'refine_extension':     'RefineExtension',
    'coarsen_extension':    'CoarsenExtension',
    'max_level':            'MaxLevel',
    'admissible':           'Admissible',
    'jump':                 'Jump',
    'verbose':              'Verbose',
}

def default_options():
    """Return a new dict containing the default options."""
    return {
        'RefineRule':       marking.FRACTION,
        'CoarsenRule':      marking.FRACTION,
        'RefineParam':      0.1,
        'CoarsenParam':     0.1,
        'RefineExtension':  0,
        'CoarsenExtension': 0,
        'MaxLevel':         10,
        'Admissible':       True,
        'Jump':             2,
        'Verbose':          0,
    }

def _option_key(key):
    key = _OPTION_KEYS.get(key, key)
    if key not in _OPTION_KEYS.values():
        raise KeyError('unknown option {!r}'.format(key))
    return key

def _int_option(options, key, minval):
    val = options[key]
    if isinstance(val, bool) or not isinstance(val, numbers.Integral) or val < minval:
        raise ValueError('option {} must be an integer >= {}, got {!r}'.format(key, minval, val))
    return int(val)

def _param_option(options, key):
    val = options[key]
    if isinstance(val, bool) or not isinstance(val, numbers.Real) or not 0 <= val <= 1:
        raise ValueError('option {} must be a number in [0,1], got {!r}'.format(key, val))
    return float(val)


class AdaptiveMeshing:
    """Marks and applies refinement and coarsening of the elements of a
    hierarchical multi-patch mesh.

    Arguments:
        mesh: the mesh to adapt; it is modified in place by :meth:`refine`
            and :meth:`unrefine`. It must provide `numpatches`, `numel`,
            `elements`, `is_element`, `neighbors`, `family_is_active`,
            `refine_elements` and `coarsen_elements` as
            :class:`.HPatchMesh` does.
        **kwargs: options, either under their option names
            (``RefineRule=...``) or in snake case (``refine_rule=...``)

    Attributes:
        options (dict): the options, see the module documentation
        marked_ref (:class:`.HBoxContainer`): the elements marked by the last
            call to :meth:`mark_ref`
        marked_crs (:class:`.HBoxContainer`): the elements marked by the last
            call to :meth:`mark_crs`

    Note:
        After the mesh has been changed by :meth:`refine` or :meth:`unrefine`,
        :meth:`rebuild` must be called before marking again.
    """
    def __init__(self, mesh, **kwargs):
        self.mesh = mesh
        self.options = default_options()
        self.set_options(**kwargs)
        self.get_options()
        self.marked_ref = HBoxContainer()
        self.marked_crs = HBoxContainer()
        self.rebuild()

    ############################################################################
    # Options
    ############################################################################

    def set_option(self, key, value):
        self.options[_option_key(key)] = value

    def set_options(self, **kwargs):
        for (key, value) in kwargs.items():
            self.set_option(key, value)

    def get_options(self):
        """Validate the options and read them into the engine."""
        opt = self.options
        self._ref_rule = marking.parse_rule(opt['RefineRule'])
        self._crs_rule = marking.parse_rule(opt['CoarsenRule'])
        self._ref_param = _param_option(opt, 'RefineParam')
        self._crs_param = _param_option(opt, 'CoarsenParam')
        self._ref_ext = _int_option(opt, 'RefineExtension', 0)
        self._crs_ext = _int_option(opt, 'CoarsenExtension', 0)
        self._max_level = _int_option(opt, 'MaxLevel', 1)
        self._m = _int_option(opt, 'Jump', 1)
        self._verbose = _int_option(opt, 'Verbose', 0)
        self._admissible = bool(opt['Admissible'])

    ############################################################################
    # Index maps
    ############################################################################

    def _make_map(self):
        return IndexMap(self.mesh)

    def rebuild(self):
        """Recompute the index maps after the mesh has changed.

        The stored marks :attr:`marked_ref` and :attr:`marked_crs` refer to
        the previous mesh and are cleared.
        """
        self._index = self._make_map()
        self._stale = False
        self.marked_ref.clear()
        self.marked_crs.clear()

    @property
    def index_map(self):
        """The :class:`.IndexMap` of the current mesh snapshot."""
        return self._index

    @property
    def is_stale(self):
        """True if the mesh has changed since the last :meth:`rebuild`."""
        return self._stale

    def _check_fresh(self):
        if self._stale:
            raise RuntimeError('the mesh has changed; call rebuild() before marking')

    def _assign_errors(self, errors):
        self._index.assign_errors(errors)

    def _box(self, box):
        """Return the element of the index map which is equal to `box`, if possible."""
        if not self._stale and box in self._index:
            return self._index.box_of(self._index.index_of(box))
        return box

    def _to_container(self, boxes):
        if isinstance(boxes, HBoxContainer):
            return boxes
        if not isinstance(boxes, np.ndarray):
            boxes = list(boxes)
            if not boxes or isinstance(boxes[0], HBox):
                return HBoxContainer(boxes)
        # boolean vector over the elements
        self._check_fresh()
        return self._index.to_container(boxes)

    ############################################################################
    # Marking
    ############################################################################

    def _ref_predicates(self):
        return [MaxLevelCheck(self._max_level)]

    def _crs_predicates(self, marked_ref):
        return [MinLevelCheck(),
                CompleteFamilyCheck(self.mesh),
                OverlapCheck(marked_ref, family=True)]

    def _select(self, candidates, rule, param, coarsen):
        """Apply the marking rule to the candidate elements; ties are broken by box order."""
        if not candidates:
            return []
        x = np.array([b.error for b in candidates], dtype=float)
        order = sorted(range(len(candidates)), key=lambda i: candidates[i].key)
        ranks = np.empty(len(candidates), dtype=int)
        ranks[order] = np.arange(len(candidates))
        idx = marking.mark(x, rule, param, ranks=ranks, coarsen=coarsen)
        return [candidates[i] for i in idx]

    def _extend(self, marked, rings, predicates, coarsen=False):
        """Add `rings` layers of neighboring elements which pass `predicates`.
        For coarsening, whole families are added."""
        front = list(marked)
        for _ in range(rings):
            new = []
            for b in front:
                for n in self.mesh.neighbors(b):
                    if n in marked or not check_box(n, predicates):
                        continue
                    for s in (n.siblings() if coarsen else [n]):
                        s = self._box(s)
                        if marked.add(s):
                            new.append(s)
            front = new

    def _refine_closure(self, marked):
        """Extend `marked` until refining it keeps the mesh admissible."""
        check = AdmissibleRefineCheck(self.mesh, self._m)
        queue = list(marked)
        while queue:
            b = queue.pop()
            for n in check.violations(b):
                n = self._box(n)
                if marked.add(n):
                    queue.append(n)

    def _coarsen_filter(self, marked, marked_ref=None):
        """Remove families from `marked` whose merging would break admissibility,
        taking into account the elements in `marked_ref` which will be refined.

        Returns:
            int: the number of dropped families
        """
        ref = marked_ref if marked_ref is not None else HBoxContainer()
        families = dict()
        for b in marked:
            if b.level > 0:
                families.setdefault(b.parent(), []).append(b)
        crs = set(families)

        def post_level(n):
            if n in ref:
                return n.level + 1
            if n.level > 0 and n.parent() in crs:
                return n.level - 1
            return n.level

        check = AdmissibleCoarsenCheck(self.mesh, self._m, post_level)
        changed = True
        while changed:
            changed = False
            for parent in sorted(crs):
                if not check(families[parent][0]):
                    crs.discard(parent)
                    changed = True
        dropped = set(families) - crs
        for parent in dropped:
            for b in families[parent]:
                marked.discard(b)
        return len(dropped)

    def _print_marking(self, marked, what):
        if self._verbose > 0:
            print('Marked {} elements for {}.'.format(len(marked), what))
        if self._verbose > 1:
            print(marked)

    def mark_ref_into(self, errors, marked):
        """Mark elements for refinement.

        Arguments:
            errors: flat vector of element errors in index map order
            marked (:class:`.HBoxContainer`): output container; it is cleared
                and filled with the marked elements
        """
        self._check_fresh()
        self.get_options()
        self._assign_errors(errors)
        predicates = self._ref_predicates()
        candidates = [b for b in self._index if check_box(b, predicates)]
        result = HBoxContainer(self._select(candidates, self._ref_rule, self._ref_param, coarsen=False))
        self._extend(result, self._ref_ext, predicates)
        if self._admissible:
            self._refine_closure(result)
        marked.clear()
        marked.update(result)
        self._print_marking(marked, 'refinement')

    def mark_crs_into(self, errors, marked_ref, marked=None):
        """Mark elements for coarsening.

        Elements are only marked together with all of their siblings, since
        coarsening merges a whole family into its parent. No element whose
        family overlaps the refinement marks is marked.

        Can be called either as ``mark_crs_into(errors, marked_ref, marked)``
        or as ``mark_crs_into(errors, marked)`` if no elements are marked for
        refinement.

        Arguments:
            errors: flat vector of element errors in index map order
            marked_ref (:class:`.HBoxContainer`): the elements marked for refinement
            marked (:class:`.HBoxContainer`): output container; it is cleared
                and filled with the marked elements
        """
        if marked is None:
            marked_ref, marked = HBoxContainer(), marked_ref
        self._check_fresh()
        self.get_options()
        self._assign_errors(errors)
        ref = HBoxContainer(marked_ref)
        if self._admissible:
            self._refine_closure(ref)
        predicates = self._crs_predicates(ref)
        candidates = [b for b in self._index if check_box(b, predicates)]
        selected = HBoxContainer(self._select(candidates, self._crs_rule, self._crs_param, coarsen=True))
        # only complete families can be merged
        result = HBoxContainer(b for b in selected
                if all(s in selected for s in b.siblings()))
        self._extend(result, self._crs_ext, predicates, coarsen=True)
        if self._admissible:
            self._coarsen_filter(result, ref)
        marked.clear()
        marked.update(result)
        self._print_marking(marked, 'coarsening')

    def mark_ref(self, errors):
        """Mark elements for refinement into :attr:`marked_ref`."""
        self.mark_ref_into(errors, self.marked_ref)

    def mark_crs(self, errors):
        """Mark elements for coarsening into :attr:`marked_crs`, avoiding the
        elements in :attr:`marked_ref`."""
        self.mark_crs_into(errors, self.marked_ref, self.marked_crs)

    ############################################################################
    # Refinement and coarsening
    ############################################################################

    def refine(self, boxes=None):
        """Subdivide the given elements into their children.

        Arguments:
            boxes: a :class:`.HBoxContainer`, a sequence of elements, or a
                boolean vector over the elements in index map order; by
                default :attr:`marked_ref`

        Elements which are not part of the mesh or which are already on level
        ``MaxLevel`` are skipped and leave the mesh unchanged. If the
        ``Admissible`` option is set, the remaining elements are extended
        such that the refined mesh is admissible, and then refined.

        Returns:
            bool: True if all requested elements were refined
        """
        container = self._to_container(self.marked_ref if boxes is None else boxes)
        self.get_options()
        accepted = HBoxContainer()
        rejected = []
        for b in container:
            if self.mesh.is_element(b) and b.level < self._max_level:
                accepted.add(b)
            else:
                rejected.append(b)
        if self._admissible:
            self._refine_closure(accepted)
        if accepted:
            self.mesh.refine_elements(accepted)
            self._stale = True
        if self._verbose > 0:
            print('Refined {} elements.'.format(len(accepted)))
            if rejected:
                print('Skipped {} elements: {}'.format(len(rejected), rejected))
        return not rejected

    def unrefine(self, boxes=None):
        """Merge the given elements, together with their siblings, into their parents.

        Arguments:
            boxes: a :class:`.HBoxContainer`, a sequence of elements, or a
                boolean vector over the elements in index map order; by
                default :attr:`marked_crs`

        Elements which are not part of the mesh, which are on level 0, or
        which have a sibling that is not an element are skipped. If the
        ``Admissible`` option is set, the families of the remaining elements
        whose merging would break admissibility are skipped as well; all
        other families are merged.

        Returns:
            bool: True if all requested elements were merged
        """
        container = self._to_container(self.marked_crs if boxes is None else boxes)
        self.get_options()
        accepted = HBoxContainer()
        rejected = []
        for b in container:
            if self.mesh.is_element(b) and self.mesh.family_is_active(b):
                accepted.add(b)
            else:
                rejected.append(b)
        if self._admissible:
            candidates = accepted.copy()
            self._coarsen_filter(accepted)
            rejected.extend(candidates - accepted)
        if accepted:
            self.mesh.coarsen_elements(accepted)
            self._stale = True
        if self._verbose > 0:
            print('Coarsened {} elements.'.format(len(accepted)))
            if rejected:
                print('Skipped {} elements: {}'.format(len(rejected), rejected))
        return not rejected

    def refine_all(self):
        """Refine all elements below ``MaxLevel``, ignoring errors."""
        self._check_fresh()
        self.get_options()
        predicates = self._ref_predicates()
        return self.refine(HBoxContainer(b for b in self._index if check_box(b, predicates)))

    def unrefine_all(self):
        """Coarsen all complete families of elements, ignoring errors."""
        self._check_fresh()
        self.get_options()
        predicates = self._crs_predicates(HBoxContainer())
        return self.unrefine(HBoxContainer(b for b in self._index if check_box(b, predicates)))
