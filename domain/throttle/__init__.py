"""Request throttling exports."""
from .denylist import Denylist

__all__ = ["Denylist"]
