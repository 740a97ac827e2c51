"""Live image replication onto the new root filesystem."""

from .generators import DIVERTED_FILES, generator_for
from .replicator import ReplicationStats, replicate, replicate_tree
from .walker import stat_entry, walk_tree

__all__ = [
    "DIVERTED_FILES",
    "ReplicationStats",
    "generator_for",
    "replicate",
    "replicate_tree",
    "stat_entry",
    "walk_tree",
]
