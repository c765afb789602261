"""
State Store Port

Architectural Intent:
- Durable home of InstallState, keyed by run id
- Sole source of truth for "has this step already succeeded"
- Implementations must make ``save`` atomic so a crash leaves a loadable snapshot
"""

from abc import ABC, abstractmethod
from typing import Optional
from keystone.domain.entities.install_state import InstallState


class StateStorePort(ABC):
    @abstractmethod
    async def load(self, run_id: str) -> Optional[InstallState]:
        """
        Returns the persisted state for ``run_id`` or None when there is none.
        """
        pass

    @abstractmethod
    async def save(self, state: InstallState) -> None:
        pass

    @abstractmethod
    async def clear(self, run_id: str) -> bool:
        """
        Removes persisted state. Returns True if something was removed.
        """
        pass
