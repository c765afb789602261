"""
Registry Port

Architectural Intent:
- OCI registry operations needed by artifact sync
- Existence checks and copies; authentication is an adapter concern
"""

from abc import ABC, abstractmethod


class RegistryPort(ABC):
    @abstractmethod
    def image_exists(self, reference: str) -> None:
        """
        Raises if ``reference`` cannot be resolved in its registry.
        """
        pass

    @abstractmethod
    def copy_image(self, source: str, destination: str) -> None:
        pass
