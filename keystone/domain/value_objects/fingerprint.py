from dataclasses import dataclass
import hashlib
import json

from keystone.domain.entities.step import Step


@dataclass(frozen=True)
class Fingerprint:
    """
    Value Object identifying a step's name, declared dependencies and
    configuration. Recorded with completed state and compared on resume.
    """
    value: str

    def __post_init__(self):
        if len(self.value) != 64:
            raise ValueError(f"Invalid fingerprint: {self.value}")

    @classmethod
    def of(cls, step: Step) -> "Fingerprint":
        payload = json.dumps(
            {
                "name": step.name,
                "dependencies": sorted(step.dependencies),
                "config": step.config,
            },
            sort_keys=True,
            default=str,
            separators=(",", ":"),
        )
        return cls(hashlib.sha256(payload.encode()).hexdigest())

    def __str__(self):
        return self.value
