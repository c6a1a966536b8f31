"""Predicates which decide whether an element may be marked for refinement
or coarsening.

Each predicate is a callable taking an :class:`.HBox` and returning True if
the box passes the check. Lists of predicates are combined with
:func:`check_box`, which requires all of them to pass.
"""

def check_box(box, predicates):
    """Check if `box` passes all `predicates`."""
    return all(pred(box) for pred in predicates)

def check_boxes(boxes, predicates):
    """Check if all `boxes` pass all `predicates`."""
    return all(check_box(b, predicates) for b in boxes)


class MaxLevelCheck:
    """Passes if the box is below `max_level` and can still be refined."""
    def __init__(self, max_level):
        self.max_level = max_level

    def __call__(self, box):
        return box.level < self.max_level


class MinLevelCheck:
    """Passes if the box is above level 0 and can still be coarsened."""
    def __call__(self, box):
        return box.level > 0


class OverlapCheck:
    """Passes if the box does not overlap any box of the container `opposing`.

    With `family=True`, the whole region of the parent of the box is tested,
    since coarsening a box merges all of its siblings.
    """
    def __init__(self, opposing, family=False):
        self.by_patch = opposing.by_patch()
        self.family = family

    def __call__(self, box):
        region = box.parent().children() if (self.family and box.level > 0) else box
        return not any(region.overlaps(b) for b in self.by_patch.get(box.patch, ()))


class CompleteFamilyCheck:
    """Passes if all siblings of the box (the children of its parent) are
    elements of `mesh`, so that they can be merged into the parent."""
    def __init__(self, mesh):
        self.mesh = mesh

    def __call__(self, box):
        return self.mesh.family_is_active(box)


class AdmissibleRefineCheck:
    """Passes if refining the box keeps all level differences between it
    and its current neighbors at most `m`."""
    def __init__(self, mesh, m):
        self.mesh = mesh
        self.m = m

    def violations(self, box):
        """Return the neighbors which are too coarse for refining `box`."""
        return [n for n in self.mesh.neighbors(box) if box.level + 1 - n.level > self.m]

    def __call__(self, box):
        return not self.violations(box)


class AdmissibleCoarsenCheck:
    """Passes if merging the family of the box into its parent keeps all level
    differences between the parent and its neighbors at most `m`.

    `post_level` is an optional function giving the level which a neighbor
    will have after the current adaptation step (default: its current level).
    """
    def __init__(self, mesh, m, post_level=None):
        self.mesh = mesh
        self.m = m
        self.post_level = post_level or (lambda n: n.level)

    def violations(self, box):
        """Return the neighbors of the parent of `box` which would be too fine
        after merging."""
        parent = box.parent()
        return [n for n in self.mesh.neighbors(parent)
                if self.post_level(n) - parent.level > self.m]

    def __call__(self, box):
        return not self.violations(box)
