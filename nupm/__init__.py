"""
nupm - Package resolution and installation orchestrator

Finds packages in NuGet-style feeds and local directories, computes the
missing dependency closure and drives an external installer:
- Parallel source queries with per-source failure isolation
- Opaque package references that round-trip without re-querying
- Dependency-first installs with progress and cancellation
"""

__version__ = "0.3.0"
__author__ = "nupm contributors"
