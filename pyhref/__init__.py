"""pyhref

Adaptive refinement and coarsening of hierarchical multi-patch meshes.
"""

__version__ = '0.1.0'
