from pyhref.hmesh import *

def test_tpmesh():
    M = TPMesh((2, 3))
    assert M.numel == 6
    assert M.cells()[:2] == [(0,0), (0,1)]
    assert M.refine() == TPMesh((4, 6))
    assert sorted(M.cells_touching((1, 1), (2, 2))) == [(0,0), (0,1), (0,2), (1,0), (1,1), (1,2)]
    assert sorted(M.cells_touching((2, 0), (2, 1))) == [(1,0), (1,1)]

def test_hmesh_refine():
    hm = HMesh((4, 4))
    assert hm.numlevels == 1 and hm.numel == 16
    new = hm.refine({0: [(0,0), (0,1)]})
    assert list(new.keys()) == [1]
    assert set(new[1]) == {(0,0), (0,1), (1,0), (1,1), (0,2), (0,3), (1,2), (1,3)}
    assert hm.numlevels == 2
    assert hm.numel == 14 + 8
    assert hm.maxlevel == 1
    assert hm.deactivated[0] == {(0,0), (0,1)}
    flat = hm.active_cells(flat=True)
    assert len(flat) == hm.numel
    assert flat[0] == (0, (0,2)) and flat[-1] == (1, (1,3))
    assert hm.is_active(1, (1,3)) and not hm.is_active(0, (0,0)) and not hm.is_active(5, (0,0))
    assert hm.numspans_on_level(2) == (16, 16)

def test_hmesh_coarsen():
    hm = HMesh((4, 4))
    hm.refine({0: [(2,2)]})
    hm.refine({1: [(5,5)]})
    assert hm.numlevels == 3 and hm.numel == 15 + 3 + 4
    removed = hm.coarsen({1: [(5,5)]})
    assert removed == {2: set(hm.cell_children(1, [(5,5)]))}
    assert hm.numlevels == 2 and hm.numel == 15 + 4
    hm.coarsen({0: [(2,2)]})
    assert hm.numlevels == 1 and hm.numel == 16
    assert hm.active[0] == set(hm.meshes[0].cells())

def test_hmesh_cells():
    hm = HMesh((4, 4))
    hm.refine({0: [(2,2), (2,3), (3,2), (3,3)]})
    hm.refine({1: [(6,6), (6,7), (7,6), (7,7)]})
    assert hm.numlevels == 3

    # coarse deactivated cell to fine active cells
    assert hm.hmesh_cells({0: {(2,2)}}) == {1: {(4,4), (4,5), (5,4), (5,5)}}
    assert hm.hmesh_cells({0: {(3,3)}}) == {2: {(i, j) for i in range(12, 16) for j in range(12, 16)}}

    # fine inactive cell to coarse active cell
    assert hm.hmesh_cells({2: {(6,5)}}) == {0: {(1,1)}}
    assert hm.cell_parent(2, [(6,5), (7,4)]) == {(3,2)}

def test_cells_touching():
    hm = HMesh((4, 4))
    hm.refine({0: [(1,1)]})
    # the cells touching the coarse cell (0,0)
    T = hm.cells_touching(0, (0,0), (1,1))
    assert T == {0: {(0,0), (0,1), (1,0)}, 1: {(2,2)}}
    # the cells touching the fine cell (3,3) on level 1
    T = hm.cells_touching(1, (3,3), (4,4))
    assert T == {0: {(1,2), (2,1), (2,2)}, 1: {(2,2), (2,3), (3,2), (3,3)}}
    # a degenerate box on the boundary x=0
    T = hm.cells_touching(0, (0,0), (0,1))
    assert T == {0: {(0,0), (0,1)}}
