"""Repository exports"""
from .base import OwnedRepository
from .timers import TimerRepository

__all__ = [
    'OwnedRepository',
    'TimerRepository',
]
