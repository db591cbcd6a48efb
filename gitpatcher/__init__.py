"""
gitpatcher maintains a directory of patch files describing how a vendored
git tree diverges from its upstream history.

The package is organised around a small pipeline: resolve the commit
range, extract one patch per commit, reconcile the result with the patch
directory, and (independently) replay stored patches onto a clean tree.
"""

__version__ = "0.3.0"
