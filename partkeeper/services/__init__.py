"""Partition lifecycle services."""

from partkeeper.services.partition_extender import PartitionExtender
from partkeeper.services.purger import DependencyAwarePurger, PartitionCatalog
from partkeeper.services.retention_calculator import RetentionCalculator

__all__ = [
    "DependencyAwarePurger",
    "PartitionCatalog",
    "PartitionExtender",
    "RetentionCalculator",
]
