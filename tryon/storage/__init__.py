"""
Storage layer: balances, task records, saved results, notifications.
"""
from tryon.storage.base import BaseStorage
from tryon.storage.factory import create_storage, get_storage, reset_storage

__all__ = ['BaseStorage', 'create_storage', 'get_storage', 'reset_storage']
