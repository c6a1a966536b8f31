from pyhref.marking import *
import unittest

def test_parse_rule():
    assert parse_rule('Threshold') == THRESHOLD
    assert parse_rule(2) == PERCENTAGE
    assert parse_rule(np.int64(3)) == FRACTION
    for bad in ('bulk', 0, 4, True, None):
        with unittest.TestCase().assertRaises(ValueError):
            parse_rule(bad)

def test_sort_permutation():
    x = np.array([1.0, 3.0, 3.0, 2.0])
    assert sort_permutation(x).tolist() == [1, 2, 3, 0]
    # ties are broken by the ranks, not by the position
    assert sort_permutation(x, ranks=[0, 3, 1, 2]).tolist() == [2, 1, 3, 0]
    assert sort_permutation(x, coarsen=True).tolist() == [0, 3, 1, 2]

def test_fraction():
    x = np.array([1., 10., 100., 1000.])
    assert doerfler_mark(x, 0.7).tolist() == [3]
    assert doerfler_mark(x, 0.9).tolist() == [3]
    assert doerfler_mark(x, 0.95).tolist() == [2, 3]
    assert doerfler_mark(x, 1.0).tolist() == [0, 1, 2, 3]
    assert doerfler_mark(x, 0.0).tolist() == []
    assert doerfler_mark(np.zeros(3), 0.5).tolist() == []
    # coarsening takes the smallest errors first
    assert doerfler_mark(x, 0.005, coarsen=True).tolist() == [0, 1]

def test_fraction_coverage():
    rng = np.random.RandomState(0)
    x = rng.rand(50)
    for theta in (0.1, 0.3, 0.5, 0.8, 0.95):
        idx = doerfler_mark(x, theta)
        S = x[idx].sum()
        assert S >= theta * x.sum()
        # the smallest error in the marked set is the last one added
        assert S - x[idx].min() < theta * x.sum()
        # all unmarked entries are at most as large as the marked ones
        assert np.delete(x, idx).max() <= x[idx].min()

def test_percentage():
    x = np.array([1., 10., 100., 1000.])
    assert percentage_mark(x, 0.5).tolist() == [2, 3]
    assert percentage_mark(x, 0.3).tolist() == [3]      # rounded down
    assert percentage_mark(x, 0.2).tolist() == []
    assert percentage_mark(x, 0.5, coarsen=True).tolist() == [0, 1]
    assert len(percentage_mark(np.ones(10), 0.7)) == 7
    # equal errors: the ranks decide
    assert percentage_mark(np.ones(4), 0.5, ranks=[3, 2, 1, 0]).tolist() == [2, 3]

def test_threshold():
    x = np.array([1., 10., 100., 1000.])
    assert threshold_mark(x, 0.05).tolist() == [2, 3]
    assert threshold_mark(x, 0.05, coarsen=True).tolist() == [0, 1]
    assert threshold_mark(x, 1.0).tolist() == []
    assert threshold_mark(np.zeros(0), 0.5).tolist() == []

def test_threshold_monotone():
    x = np.random.RandomState(1).rand(100)
    counts = [len(mark(x, 'threshold', theta)) for theta in np.linspace(0, 1, 21)]
    assert all(a >= b for (a, b) in zip(counts, counts[1:]))

def test_mark():
    x = np.array([1., 10., 100., 1000.])
    assert mark(x, 'fraction', 0.7).tolist() == [3]
    assert mark(x, 2, 0.5).tolist() == [2, 3]
    with unittest.TestCase().assertRaises(ValueError):
        mark(x, 'fraction', 1.5)
