"""
Data management submodule: storage files, their validation and atomic writes.
"""

from .core import Storage, StorageFactory, DEFAULT_STORAGE_FILE_NAME

__all__ = [
    'Storage',
    'StorageFactory',
    'DEFAULT_STORAGE_FILE_NAME',
]
