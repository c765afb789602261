"""
Provisioner Port

Architectural Intent:
- Capability set shared by every provisioning strategy
- A strategy is chosen once from ProvisioningMode; callers never branch on mode
"""

from abc import ABC, abstractmethod
from enum import Enum


class ProvisioningMode(Enum):
    TERRAFORM = "terraform"
    MAKEFILE = "makefile"
    HYBRID = "hybrid"


class ProvisionerPort(ABC):
    mode: ProvisioningMode

    @abstractmethod
    def init(self) -> None:
        pass

    @abstractmethod
    def plan(self) -> None:
        pass

    @abstractmethod
    def apply(self) -> None:
        pass

    @abstractmethod
    def destroy(self) -> None:
        pass

    @abstractmethod
    def validate(self) -> None:
        pass
