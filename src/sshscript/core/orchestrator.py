"""Lifecycle orchestration: which files and commands run for each phase"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sshscript.core.config import Config, Phase
from sshscript.core.context import Context
from sshscript.core.diagnostics import DiagnosticsSink, LoggingSink
from sshscript.core.errors import ProvisionError
from sshscript.core.provisioner import Provisioner
from sshscript.transport.base import BaseTransport

logger = logging.getLogger(__name__)

# Phases that upload files before running their commands
FILE_PHASES = (Phase.CREATE, Phase.UPDATE)

_VERBS = {
    Phase.CREATE: "create",
    Phase.READ: "read",
    Phase.UPDATE: "update",
    Phase.DESTROY: "delete",
}


@dataclass
class PhaseResult:
    phase: Phase
    output: str = ""
    diagnostics: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics


class Orchestrator:
    """Runs one lifecycle phase of a script against its host"""

    def __init__(self, config: Config, sink: Optional[DiagnosticsSink] = None,
                 transport: Optional[BaseTransport] = None,
                 skip_host_verification: bool = False):
        """Initialize orchestrator

        Args:
            config: Loaded script configuration
            sink: Diagnostics destination (default: standard logging)
            transport: Transport override, mainly for tests
            skip_host_verification: Skip SSH host key verification (insecure)
        """
        self.config = config
        self.sink = sink or LoggingSink()
        self.transport = transport
        self.skip_host_verification = skip_host_verification

    def _init_provisioner(self) -> Provisioner:
        return Provisioner(
            self.config.connection,
            self.config.retry_policy,
            sink=self.sink,
            transport=self.transport,
            skip_host_verification=self.skip_host_verification,
        )

    def run_phase(self, phase: Phase, ctx: Optional[Context] = None) -> PhaseResult:
        """Copy files (create/update only) then run the phase's commands

        Errors abort this phase only and come back as diagnostics.
        """
        ctx = ctx or Context.background()
        result = PhaseResult(phase)
        verb = _VERBS[phase]

        logger.info("=" * 60)
        logger.info(f"Running {phase.value} phase")
        logger.info("=" * 60)

        try:
            provisioner = self._init_provisioner()
        except ProvisionError as e:
            logger.error(f"Failed to initialize provisioner: {e}")
            result.diagnostics.append(f"Configuration Error: {e}")
            return result

        try:
            if phase in FILE_PHASES:
                files = self.config.files
                if files:
                    provisioner.copy_files(files, ctx)

            commands = self.config.commands_for(phase)
            if commands:
                result.output = provisioner.execute(commands, ctx)
                self.sink.info(f"Script output: {result.output}")
            else:
                logger.info(f"No {phase.value} commands configured")

        except ProvisionError as e:
            logger.error(f"{phase.value} phase failed: {e}")
            result.diagnostics.append(f"Client Error: Unable to {verb} script, got error: {e}")

        finally:
            provisioner.close()

        return result
