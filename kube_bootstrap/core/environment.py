"""Persisted kops environment.

kops reads ``NAME`` and ``KOPS_STATE_STORE`` from the environment. These
values are passed explicitly to every kops invocation and written to a
dedicated file that operators can ``source`` in later shell sessions,
instead of appending to the shell profile on every run.
"""

import logging
import shlex
from pathlib import Path
from typing import Dict

from .config import Configuration


logger = logging.getLogger(__name__)


def kops_environment(config: Configuration) -> Dict[str, str]:
    """Build the environment kops expects for the configured cluster."""
    return {
        "NAME": config.get_cluster_name(),
        "KOPS_STATE_STORE": config.get_state_store_url(),
    }


class EnvironmentFile:
    """A file of ``export KEY=value`` lines owned by this tool."""

    HEADER = "# Managed by kube-bootstrap. Source this file to use kops.\n"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def write(self, values: Dict[str, str]) -> Path:
        """Replace the file content with the given variables.

        Returns:
            Path of the written file
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lines = [self.HEADER]
        for key in sorted(values):
            lines.append(f"export {key}={shlex.quote(str(values[key]))}\n")
        self.path.write_text("".join(lines), encoding="utf-8")
        logger.info(f"Environment written to {self.path}")
        return self.path

    def read(self) -> Dict[str, str]:
        """Parse the variables back out of the file.

        Returns:
            Mapping of variable names to values; empty if the file is missing
        """
        if not self.path.exists():
            return {}

        values = {}
        for line in self.path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line.startswith("export "):
                continue
            key, _, raw = line[len("export "):].partition("=")
            parts = shlex.split(raw)
            values[key] = parts[0] if parts else ""
        return values
