"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the orchestrator needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from keystone.domain.ports.state_store_port import StateStorePort
from keystone.domain.ports.tool_runner_port import ToolRunnerPort, CommandResult
from keystone.domain.ports.registry_port import RegistryPort
from keystone.domain.ports.provisioner_port import ProvisionerPort, ProvisioningMode
from keystone.domain.ports.event_bus_port import EventBusPort

__all__ = [
    "StateStorePort",
    "ToolRunnerPort",
    "CommandResult",
    "RegistryPort",
    "ProvisionerPort",
    "ProvisioningMode",
    "EventBusPort",
]
