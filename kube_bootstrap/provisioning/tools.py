"""Installation of host packages and the kops/kubectl binaries.

kops is taken from the latest GitHub release unless a version is pinned;
kubectl defaults to the cluster's Kubernetes version. A binary already
on PATH is left alone.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import requests

from ..core.command import CommandError, CommandRunner
from ..core.config import Configuration


logger = logging.getLogger(__name__)

KOPS_RELEASES_API = "https://api.github.com/repos/kubernetes/kops/releases/latest"
KOPS_DOWNLOAD_URL = "https://github.com/kubernetes/kops/releases/download/{version}/kops-linux-{arch}"
KUBECTL_STABLE_URL = "https://dl.k8s.io/release/stable.txt"
KUBECTL_DOWNLOAD_URL = "https://dl.k8s.io/release/{version}/bin/linux/{arch}/kubectl"

PACKAGE_MANAGERS = {
    "yum": {
        "update": ["yum", "update", "-y"],
        "install": ["yum", "install", "-y"],
    },
    "apt": {
        "update": ["apt-get", "update", "-y"],
        "install": ["apt-get", "install", "-y"],
    },
}

HTTP_TIMEOUT_SECONDS = 60


class ToolInstallationError(Exception):
    """Raised when a tool cannot be installed or verified."""

    pass


def _with_v_prefix(version: str) -> str:
    return version if version.startswith("v") else f"v{version}"


class ToolInstaller:
    """Installs the command-line tools a kops workflow depends on."""

    def __init__(
        self,
        config: Configuration,
        runner: CommandRunner,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize tool installer.

        Args:
            config: Configuration instance
            runner: Command runner for package manager calls
            session: Optional requests session for downloads
        """
        self.config = config
        self.runner = runner
        self.session = session or requests.Session()
        self.install_dir = Path(config.get("tools.install_dir"))
        self.arch = config.get("tools.arch")

    def install_all(self) -> Dict[str, str]:
        """Install system packages, kops and kubectl.

        Returns:
            Mapping of tool name to installed version, or 'present' when
            the tool was already available
        """
        self.install_system_packages()
        return {
            "kops": self.install_kops(),
            "kubectl": self.install_kubectl(),
        }

    def install_system_packages(self, packages: Optional[List[str]] = None) -> None:
        """Update the package index and install packages.

        Raises:
            ToolInstallationError: When the package manager is unknown or fails
        """
        manager_name = self.config.get("tools.package_manager")
        manager = PACKAGE_MANAGERS.get(manager_name)
        if manager is None:
            raise ToolInstallationError(
                f"Unsupported package manager '{manager_name}'; "
                f"use one of {', '.join(PACKAGE_MANAGERS)}"
            )

        packages = packages if packages is not None else self.config.get("tools.packages", [])
        print("Updating packages and installing prerequisites...")
        try:
            self.runner.run(manager["update"], sudo=True, capture_output=False)
            if packages:
                self.runner.run(manager["install"] + list(packages), sudo=True, capture_output=False)
        except CommandError as e:
            raise ToolInstallationError(f"Package installation failed: {e}") from e

    def resolve_kops_version(self) -> str:
        """Resolve the kops release tag to install."""
        version = self.config.get("tools.kops_version") or "latest"
        if version != "latest":
            return _with_v_prefix(version)

        try:
            response = self.session.get(KOPS_RELEASES_API, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
            return response.json()["tag_name"]
        except (requests.RequestException, KeyError, ValueError) as e:
            raise ToolInstallationError(f"Unable to determine latest kops release: {e}") from e

    def resolve_kubectl_version(self) -> str:
        """Resolve the kubectl release to install."""
        version = self.config.get("tools.kubectl_version") or self.config.get(
            "cluster.kubernetes_version"
        )
        if version and version != "stable":
            return _with_v_prefix(str(version))

        try:
            response = self.session.get(KUBECTL_STABLE_URL, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
            return response.text.strip()
        except requests.RequestException as e:
            raise ToolInstallationError(f"Unable to determine stable kubectl release: {e}") from e

    def install_kops(self) -> str:
        """Install kops unless it is already on PATH."""
        if self.runner.is_available("kops"):
            logger.info("kops already installed, skipping")
            return "present"

        version = self.resolve_kops_version()
        print(f"Installing kops {version}...")
        url = KOPS_DOWNLOAD_URL.format(version=version, arch=self.arch)
        self._install_binary("kops", url)
        return version

    def install_kubectl(self) -> str:
        """Install kubectl unless it is already on PATH."""
        if self.runner.is_available("kubectl"):
            logger.info("kubectl already installed, skipping")
            return "present"

        version = self.resolve_kubectl_version()
        print(f"Installing kubectl {version}...")
        url = KUBECTL_DOWNLOAD_URL.format(version=version, arch=self.arch)
        self._install_binary("kubectl", url)
        return version

    def _install_binary(self, name: str, url: str) -> Path:
        """Download a binary and install it into the install directory.

        Raises:
            ToolInstallationError: When download, install or verification fails
        """
        with tempfile.TemporaryDirectory() as tmp_dir:
            download_path = Path(tmp_dir) / name
            self._download(url, download_path)
            os.chmod(download_path, 0o755)

            target = self.install_dir / name
            try:
                self.runner.run(
                    ["install", "-m", "0755", str(download_path), str(target)],
                    sudo=True,
                )
            except CommandError as e:
                raise ToolInstallationError(f"Failed to install {name}: {e}") from e

        if not self.runner.is_available(name):
            raise ToolInstallationError(
                f"{name} installation failed: not found on PATH after installing to {target}"
            )

        logger.info(f"{name} installed to {target}")
        return target

    def _download(self, url: str, destination: Path) -> None:
        logger.info(f"Downloading {url}")
        try:
            with self.session.get(url, stream=True, timeout=HTTP_TIMEOUT_SECONDS) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        f.write(chunk)
        except requests.RequestException as e:
            raise ToolInstallationError(f"Failed to download {url}: {e}") from e
