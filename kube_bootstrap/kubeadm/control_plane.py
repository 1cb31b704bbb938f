"""Single-host control plane setup with kubeadm.

Prepares a pre-provisioned Debian/Ubuntu host as a Kubernetes control
plane node: host settings, containerd, the Kubernetes apt repository,
``kubeadm init``, a kubeconfig for the invoking user and the Flannel
network plugin. Root-owned files are written through ``sudo tee``.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import requests

from ..core.command import CommandError, CommandRunner
from ..core.config import Configuration
from ..core.pipeline import Pipeline


logger = logging.getLogger(__name__)

KERNEL_MODULES = ["overlay", "br_netfilter"]

SYSCTL_SETTINGS: Dict[str, str] = {
    "net.bridge.bridge-nf-call-iptables": "1",
    "net.bridge.bridge-nf-call-ip6tables": "1",
    "net.ipv4.ip_forward": "1",
}

KUBERNETES_PACKAGES = ["kubelet", "kubeadm", "kubectl"]

MODULES_LOAD_FILE = "/etc/modules-load.d/k8s.conf"
SYSCTL_FILE = "/etc/sysctl.d/k8s.conf"
CONTAINERD_CONFIG = "/etc/containerd/config.toml"
KEYRING_PATH = "/usr/share/keyrings/kubernetes-archive-keyring.gpg"
APT_SOURCE_FILE = "/etc/apt/sources.list.d/kubernetes.list"
ADMIN_KUBECONFIG = "/etc/kubernetes/admin.conf"

REPOSITORY_URL = "https://pkgs.k8s.io/core:/stable:/{version}/deb/"

HTTP_TIMEOUT_SECONDS = 60


class ControlPlaneError(Exception):
    """Raised when a control plane setup step fails."""

    pass


def enable_systemd_cgroup(containerd_config: str) -> str:
    """Switch runc to the systemd cgroup driver in a containerd config."""
    return containerd_config.replace("SystemdCgroup = false", "SystemdCgroup = true")


class ControlPlaneBootstrapper:
    """Builds and runs the kubeadm control plane pipeline."""

    def __init__(
        self,
        config: Configuration,
        runner: CommandRunner,
        session: Optional[requests.Session] = None,
        home: Optional[Path] = None,
    ) -> None:
        """Initialize the bootstrapper.

        Args:
            config: Configuration instance
            runner: Command runner; commands needing root ask for sudo
            session: Optional requests session for the repository key
            home: Home directory receiving .kube/config
        """
        self.config = config
        self.runner = runner
        self.session = session or requests.Session()
        self.home = Path(home) if home else Path.home()

    def _run(self, args: List[str], sudo: bool = True, **kwargs):
        try:
            return self.runner.run(args, sudo=sudo, **kwargs)
        except CommandError as e:
            raise ControlPlaneError(str(e)) from e

    def _write_root_file(self, path: str, content: str) -> None:
        self._run(["tee", path], input_text=content)

    def _apt_install(self, packages: List[str]) -> None:
        self._run(["apt-get", "install", "-y"] + packages, capture_output=False)

    def build_pipeline(self) -> Pipeline:
        """Assemble the control plane steps in execution order."""
        pipeline = Pipeline("kubeadm control plane setup")
        pipeline.add_step("set_hostname", "Setting hostname", self.set_hostname)
        pipeline.add_step("install_prerequisites", "Installing prerequisites",
                          self.install_prerequisites)
        pipeline.add_step("disable_swap", "Disabling swap", self.disable_swap)
        pipeline.add_step("load_kernel_modules", "Loading kernel modules", self.load_kernel_modules)
        pipeline.add_step("configure_sysctl", "Setting sysctl parameters", self.configure_sysctl)
        pipeline.add_step("install_containerd", "Installing containerd", self.install_containerd)
        pipeline.add_step("configure_containerd", "Configuring containerd", self.configure_containerd)
        pipeline.add_step("add_kubernetes_repository", "Adding Kubernetes apt repository",
                          self.add_kubernetes_repository)
        pipeline.add_step("install_kubernetes_packages", "Installing kubeadm, kubelet and kubectl",
                          self.install_kubernetes_packages)
        pipeline.add_step("initialize_cluster", "Initializing Kubernetes cluster",
                          self.initialize_cluster)
        pipeline.add_step("configure_kubectl", "Setting up kubectl for the current user",
                          self.configure_kubectl)
        pipeline.add_step("install_network_plugin", "Installing Flannel network plugin",
                          self.install_network_plugin)
        return pipeline

    def run(self):
        """Run the full control plane setup."""
        result = self.build_pipeline().run()
        if result.succeeded:
            print("Kubernetes installation complete. Use the join command displayed "
                  "by kubeadm to add worker nodes.")
        return result

    def set_hostname(self) -> str:
        hostname = self.config.get("kubeadm.hostname")
        self._run(["hostnamectl", "set-hostname", hostname])
        return hostname

    def install_prerequisites(self) -> None:
        self._run(["apt-get", "update", "-y"], capture_output=False)
        self._apt_install(list(self.config.get("kubeadm.prerequisite_packages", [])))

    def disable_swap(self) -> None:
        """Turn swap off now and comment out swap entries in /etc/fstab."""
        self._run(["swapoff", "-a"])
        self._run(["sed", "-i", "/ swap / s/^/#/", "/etc/fstab"])

    def load_kernel_modules(self) -> None:
        self._write_root_file(MODULES_LOAD_FILE, "".join(f"{m}\n" for m in KERNEL_MODULES))
        for module in KERNEL_MODULES:
            self._run(["modprobe", module])

    def configure_sysctl(self) -> None:
        content = "".join(f"{key} = {value}\n" for key, value in SYSCTL_SETTINGS.items())
        self._write_root_file(SYSCTL_FILE, content)
        self._run(["sysctl", "--system"])

    def install_containerd(self) -> None:
        self._apt_install(["containerd"])

    def configure_containerd(self) -> None:
        self._run(["mkdir", "-p", os.path.dirname(CONTAINERD_CONFIG)])
        default_config = self._run(["containerd", "config", "default"], sudo=False).stdout
        self._write_root_file(CONTAINERD_CONFIG, enable_systemd_cgroup(default_config))
        self._run(["systemctl", "restart", "containerd"])
        self._run(["systemctl", "enable", "containerd"])

    def add_kubernetes_repository(self) -> str:
        """Install the repository signing key and the apt source.

        Returns:
            Repository URL
        """
        repository = REPOSITORY_URL.format(version=self.config.get("kubeadm.repository_version"))
        key_url = f"{repository}Release.key"

        try:
            response = self.session.get(key_url, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ControlPlaneError(f"Failed to download repository key {key_url}: {e}") from e

        self._run(
            ["gpg", "--batch", "--yes", "--dearmor", "-o", KEYRING_PATH],
            input_text=response.text,
        )
        self._write_root_file(
            APT_SOURCE_FILE, f"deb [signed-by={KEYRING_PATH}] {repository} /\n"
        )
        return repository

    def install_kubernetes_packages(self) -> None:
        self._run(["apt-get", "update", "-y"], capture_output=False)
        self._apt_install(KUBERNETES_PACKAGES)
        self._run(["apt-mark", "hold"] + KUBERNETES_PACKAGES)

    def initialize_cluster(self) -> bool:
        """Run kubeadm init unless this host is already a control plane.

        Returns:
            True if kubeadm init ran, False if it was skipped
        """
        if Path(ADMIN_KUBECONFIG).exists():
            logger.info(f"{ADMIN_KUBECONFIG} exists, cluster already initialized")
            print("Cluster already initialized, skipping kubeadm init.")
            return False

        cidr = self.config.get("kubeadm.pod_network_cidr")
        self._run(["kubeadm", "init", f"--pod-network-cidr={cidr}"], capture_output=False)
        return True

    def configure_kubectl(self) -> str:
        kube_dir = self.home / ".kube"
        kube_dir.mkdir(parents=True, exist_ok=True)
        target = kube_dir / "config"
        self._run(["cp", ADMIN_KUBECONFIG, str(target)])
        self._run(["chown", f"{os.getuid()}:{os.getgid()}", str(target)])
        return str(target)

    def install_network_plugin(self) -> None:
        self._run(
            ["kubectl", "apply", "-f", self.config.get("kubeadm.network_manifest")],
            sudo=False,
            env={"KUBECONFIG": str(self.home / ".kube" / "config")},
        )
