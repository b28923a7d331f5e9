"""Base agent abstraction for transaction extraction agents.

This module defines the abstract base class for all extraction agents, enforcing a standard interface for turning
statement frames into transaction candidates.
"""

from abc import ABC, abstractmethod

from tracker.core.models import TransactionCandidate


class BaseAgent(ABC):
    """Abstract base class for all agents."""

    @abstractmethod
    def extract(self, frames: list[bytes]) -> list[TransactionCandidate]:
        """Extract transaction candidates from a list of image frames."""
