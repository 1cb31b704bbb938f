"""External command execution.

Every call to kops, kubectl, kubeadm, ssh-keygen or the host package
manager goes through CommandRunner so that exit status, output and
environment handling are the same everywhere.
"""

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Exit status and captured output of one command."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    def json(self) -> Any:
        """Decode stdout as JSON.

        Raises:
            CommandError: When stdout is not valid JSON
        """
        try:
            return json.loads(self.stdout)
        except ValueError as e:
            raise CommandError(
                f"Output of '{' '.join(self.args)}' is not valid JSON: {e}", self
            )


class CommandError(Exception):
    """Raised when an external command fails."""

    def __init__(self, message: str, result: Optional[CommandResult] = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def returncode(self) -> Optional[int]:
        return self.result.returncode if self.result else None


@dataclass
class CommandRunner:
    """Runs external commands with a shared base environment.

    Attributes:
        env: Variables added to os.environ for every command
        use_sudo: Whether commands requesting elevation get a sudo prefix;
                  disable when already running as root
    """

    env: Dict[str, str] = field(default_factory=dict)
    use_sudo: bool = True

    def run(
        self,
        args: Sequence[str],
        check: bool = True,
        capture_output: bool = True,
        input_text: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        sudo: bool = False,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run a command and wait for it to finish.

        Args:
            args: Program and arguments, executed without a shell
            check: Raise CommandError on a non-zero exit status
            capture_output: Capture stdout/stderr instead of streaming them
            input_text: Text written to the command's stdin
            env: Per-call environment overrides
            sudo: Run the command with elevated privileges
            timeout: Seconds before the command is killed

        Returns:
            CommandResult with exit status and captured output

        Raises:
            CommandError: When the program is missing, times out, or fails
                          with check enabled
        """
        command = [str(arg) for arg in args]
        if sudo and self.use_sudo:
            command = ["sudo"] + command

        merged_env = dict(os.environ)
        merged_env.update(self.env)
        if env:
            merged_env.update(env)

        display = " ".join(command)
        logger.debug(f"Running: {display}")

        try:
            process = subprocess.run(
                command,
                input=input_text,
                capture_output=capture_output,
                text=True,
                env=merged_env,
                timeout=timeout,
            )
        except FileNotFoundError:
            result = CommandResult(command, COMMAND_NOT_FOUND, "", f"{command[0]}: command not found")
            if check:
                raise CommandError(f"Command not found: {command[0]}", result)
            return result
        except subprocess.TimeoutExpired:
            raise CommandError(f"Command timed out after {timeout} seconds: {display}")

        result = CommandResult(
            args=command,
            returncode=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
        )

        if not result.succeeded:
            logger.debug(f"'{display}' exited with status {result.returncode}")
            if check:
                detail = result.stderr.strip() or result.stdout.strip()
                message = f"Command failed with exit status {result.returncode}: {display}"
                if detail:
                    message += f"\n{detail}"
                raise CommandError(message, result)

        return result

    def is_available(self, program: str) -> bool:
        """Check whether a program is on PATH."""
        return shutil.which(program) is not None
