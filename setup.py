from setuptools import setup

setup(
    name = 'pyhref',
    version = '0.1.0',
    description = 'Adaptive refinement and coarsening of hierarchical multi-patch meshes',
    long_description = 'pyhref marks and applies refinement and coarsening of hierarchical tensor product meshes\nwhile preserving the admissibility of the mesh.',
    url = 'https://github.com/pyhref/pyhref',

    classifiers=[
        'Programming Language :: Python :: 3',
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: Mathematics',
    ],
    packages = ['pyhref'],

    python_requires = '>=3.6',
    install_requires = [
        'numpy>=1.11',
        'scipy',
        'networkx',
    ],
    extras_require = {
        'test': ['pytest'],
    },
)
