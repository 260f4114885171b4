"""
Job store backends.
"""

from .base import JobStore
from .mongodb import MongoJobStore

__all__ = ['JobStore', 'MongoJobStore']
