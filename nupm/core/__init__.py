"""Core modules for nupm"""

from .config import Config, load_config
from .operations import OperationResult, PackageOperations, QueryOptions

__all__ = ['Config', 'load_config', 'OperationResult', 'PackageOperations', 'QueryOptions']
