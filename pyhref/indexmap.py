"""Index maps between the elements of a mesh snapshot and flat element indices.

Error indicators are usually computed by external code as a flat vector with
one entry per element. The entries are ordered patch by patch and, within each
patch, in the canonical order of the hierarchical mesh. An :class:`IndexMap`
aligns such a vector with the element boxes of one mesh snapshot.

Index maps are rebuilt from scratch whenever the mesh changes; they are never
updated incrementally.
"""
import numpy as np

from .hbox import HBoxContainer
from .utils import BijectiveIndex

class IndexMap:
    """Bijection between the elements of `mesh` and the indices `0, ..., n-1`.

    The boxes stored in the map are owned by the map; errors written by
    :meth:`assign_errors` are attached to them.
    """
    def __init__(self, mesh):
        self._index = BijectiveIndex(mesh.elements())
        self.numpatches = mesh.numpatches
        self.ofs = np.cumsum([0] + [mesh.numel(p) for p in range(mesh.numpatches)])

    def __len__(self):
        return len(self._index)

    def __contains__(self, box):
        return box in self._index

    def __iter__(self):
        return iter(self._index)

    def index_of(self, box):
        """Return the flat index of the element `box`."""
        return self._index.index(box)

    def box_of(self, i):
        """Return the element with flat index `i`."""
        return self._index[i]

    def boxes(self, patch=None):
        """Return the list of elements in index order, optionally only those on `patch`."""
        if patch is None:
            return list(self._index)
        return self._index.values[self.ofs[patch]:self.ofs[patch+1]]

    def assign_errors(self, errors):
        """Attach the entries of the flat vector `errors` to the elements."""
        errors = np.asarray(errors, dtype=float).ravel()
        if errors.shape[0] != len(self):
            raise ValueError('error vector has length {}, but the mesh has {} elements'
                    .format(errors.shape[0], len(self)))
        if np.isnan(errors).any():
            raise ValueError('error vector contains NaN entries')
        if (errors < 0).any():
            raise ValueError('error vector contains negative entries')
        for (box, err) in zip(self._index, errors):
            box.error = float(err)

    def errors(self):
        """Return the currently assigned errors as a vector (NaN where unset)."""
        return np.array([np.nan if b.error is None else b.error for b in self._index])

    def to_container(self, mask):
        """Return the container of the elements selected by the boolean vector `mask`."""
        mask = np.asarray(mask, dtype=bool).ravel()
        if mask.shape[0] != len(self):
            raise ValueError('mask has length {}, but the mesh has {} elements'
                    .format(mask.shape[0], len(self)))
        return HBoxContainer(self._index[i] for i in np.flatnonzero(mask))

    def to_mask(self, container):
        """Return a boolean vector which is True for the elements in `container`."""
        mask = np.zeros(len(self), dtype=bool)
        for b in container:
            if b in self._index:
                mask[self.index_of(b)] = True
        return mask
