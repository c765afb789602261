"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all Keystone settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- Image and chart lists map to tuples of frozen records
- Sections are fingerprint inputs: changing one invalidates resumed state
  for the steps that read it
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageReference:
    """An OCI image to sync, relative to the vendor/client registries."""
    name: str
    version: str = "latest"
    required: bool = True

    def reference(self, registry: str) -> str:
        base = f"{self.name}:{self.version}"
        return f"{registry.rstrip('/')}/{base}" if registry else base


@dataclass(frozen=True)
class ChartConfig:
    """A Helm chart deployed by the deploy workflow."""
    name: str
    path: str
    namespace: str = ""
    values_file: str = ""
    order: int = 1


@dataclass(frozen=True)
class InstallerConfig:
    """General installer settings."""
    version: str = "1.0.0"
    workspace: str = "./workspace"
    state_file: str = ""
    report_file: str = ""
    required_tools: tuple[str, ...] = ("git",)


@dataclass(frozen=True)
class ExecutionConfig:
    """Scheduler defaults; CLI flags override per run."""
    parallel: bool = False
    max_workers: int = 5
    continue_on_error: bool = False
    atomic: bool = False
    deadline_seconds: float = 0.0


@dataclass(frozen=True)
class ArtifactsConfig:
    """OCI images, Helm charts and Terraform modules to fetch."""
    skip_pull: bool = False
    vendor_registry: str = ""
    client_registry: str = ""
    images: tuple[ImageReference, ...] = ()
    sync_workers: int = 5
    helm_repo: str = ""
    helm_ref: str = ""
    terraform_repo: str = ""
    terraform_ref: str = ""


@dataclass(frozen=True)
class InfrastructureConfig:
    """Provisioning strategy and its inputs."""
    enabled: bool = True
    mode: str = "terraform"
    terraform_dir: str = "modules"
    makefile_dir: str = "."
    var_files: tuple[str, ...] = ()
    auto_approve: bool = True
    parallelism: int = 10
    timeout_seconds: float = 1800.0


@dataclass(frozen=True)
class DatabaseConfig:
    """Database migration commands, run from the workspace."""
    enabled: bool = False
    migrate_command: str = ""
    validate_command: str = ""
    timeout_seconds: float = 600.0


@dataclass(frozen=True)
class DeploymentConfig:
    """Helm deployment settings."""
    namespace: str = "default"
    kube_context: str = ""
    charts: tuple[ChartConfig, ...] = ()
    create_namespace: bool = True
    wait: bool = True
    helm_timeout: str = "10m"
    atomic: bool = True
    skip_health_check: bool = False
    health_check_command: str = ""


@dataclass(frozen=True)
class ValidationConfig:
    """Post-deployment checks, one shell command each."""
    enabled: bool = True
    commands: tuple[str, ...] = ()
    timeout_seconds: float = 300.0


@dataclass(frozen=True)
class TestingConfig:
    """End-to-end test suite."""
    enabled: bool = False
    command: str = "pytest"
    suite: str = "tests/e2e"
    args: tuple[str, ...] = ()
    timeout_seconds: float = 1800.0


@dataclass(frozen=True)
class KeystoneConfig:
    """Root configuration for the Keystone installer."""
    installer: InstallerConfig = field(default_factory=InstallerConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    artifacts: ArtifactsConfig = field(default_factory=ArtifactsConfig)
    infrastructure: InfrastructureConfig = field(default_factory=InfrastructureConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    testing: TestingConfig = field(default_factory=TestingConfig)
    log_level: str = "WARNING"

    @property
    def workspace(self) -> Path:
        return Path(self.installer.workspace)

    @property
    def state_file(self) -> Path:
        if self.installer.state_file:
            return Path(self.installer.state_file)
        return self.workspace / ".keystone-state.json"

    @property
    def report_file(self) -> Path:
        if self.installer.report_file:
            return Path(self.installer.report_file)
        return self.workspace / "reports" / "installation-report.json"

    @property
    def log_dir(self) -> Path:
        return self.workspace / "logs"

    @property
    def deploy_state_file(self) -> Path:
        """Standalone ``keystone deploy`` runs keep their own state file."""
        path = self.state_file
        return path.with_name(f"{path.stem}-deploy{path.suffix or '.json'}")

    def section(self, name: str) -> dict:
        """Plain-dict view of one section, used as step fingerprint input."""
        return dataclasses.asdict(getattr(self, name))

    def with_overrides(
        self,
        workspace: Optional[str] = None,
        state_file: Optional[str] = None,
        report_file: Optional[str] = None,
    ) -> "KeystoneConfig":
        """Copy with CLI path overrides applied; None leaves a value unchanged."""
        changes = {
            key: value
            for key, value in (
                ("workspace", workspace),
                ("state_file", state_file),
                ("report_file", report_file),
            )
            if value
        }
        if not changes:
            return self
        return dataclasses.replace(
            self, installer=dataclasses.replace(self.installer, **changes)
        )


_RECORD_FIELDS = {
    "tuple[ImageReference, ...]": ImageReference,
    "tuple[ChartConfig, ...]": ChartConfig,
}


def _env_override(data: dict, prefix: str = "KEYSTONE") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern KEYSTONE_SECTION_KEY.
    For example: KEYSTONE_EXECUTION_MAX_WORKERS=8,
    KEYSTONE_VALIDATION_COMMANDS="kubectl get pods,./smoke.sh"
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        parts = key[len(prefix) + 1:].lower().split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        elif len(parts) == 1:
            data[parts[0]] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        logger.warning("Ignoring malformed %s section: %r", cls.__name__, data)
        data = {}
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    for f in dataclasses.fields(cls):
        if f.name not in filtered:
            continue
        val = filtered[f.name]

        # Lists of records: images, charts
        if f.type in _RECORD_FIELDS:
            record = _RECORD_FIELDS[f.type]
            filtered[f.name] = tuple(
                _build_sub_config(record, item) for item in (val or [])
            )
            continue

        # Convert comma-separated strings to tuples for tuple fields
        if f.type == "tuple[str, ...]":
            if isinstance(val, str):
                filtered[f.name] = tuple(v.strip() for v in val.split(",") if v.strip())
            elif isinstance(val, list):
                filtered[f.name] = tuple(val)

        # Convert string numbers to int/float/bool
        elif isinstance(val, str):
            if f.type == "int":
                filtered[f.name] = int(val)
            elif f.type == "float":
                filtered[f.name] = float(val)
            elif f.type == "bool":
                filtered[f.name] = val.lower() in ("true", "1", "yes")

    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "KEYSTONE",
) -> KeystoneConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (KEYSTONE_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to keystone.json in CWD.
        env_prefix: Environment variable prefix. Defaults to KEYSTONE.
    """
    config_path = Path(path) if path else Path("keystone.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return KeystoneConfig(
        installer=_build_sub_config(InstallerConfig, data.get("installer", {})),
        execution=_build_sub_config(ExecutionConfig, data.get("execution", {})),
        artifacts=_build_sub_config(ArtifactsConfig, data.get("artifacts", {})),
        infrastructure=_build_sub_config(
            InfrastructureConfig, data.get("infrastructure", {})
        ),
        database=_build_sub_config(DatabaseConfig, data.get("database", {})),
        deployment=_build_sub_config(DeploymentConfig, data.get("deployment", {})),
        validation=_build_sub_config(ValidationConfig, data.get("validation", {})),
        testing=_build_sub_config(TestingConfig, data.get("testing", {})),
        log_level=data.get("log_level", "WARNING"),
    )
