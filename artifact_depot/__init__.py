"""
Artifact Depot

Refreshes published artifact metadata from a Maven repository and resolves
the transitive dependency graph of every stored version.
"""

__version__ = "0.1.0"

from .cli import main
from .depot import Depot

__all__ = ["Depot", "main"]
