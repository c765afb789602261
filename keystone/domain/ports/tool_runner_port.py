"""
Tool Runner Port

Architectural Intent:
- Narrow seam between step handlers and external CLIs
  (terraform, make, helm, kubectl, crane, git)
- Blocking by contract; handlers using it run in worker threads
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence


@dataclass(frozen=True)
class CommandResult:
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ToolRunnerPort(ABC):
    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Runs a command. With ``check`` a non-zero exit raises CommandError.
        """
        pass

    @abstractmethod
    def which(self, tool: str) -> Optional[str]:
        pass
