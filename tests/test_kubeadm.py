"""Unit tests for kubeadm control plane setup."""

import os
from unittest.mock import MagicMock, patch

import pytest
import requests

from kube_bootstrap.core.command import CommandError, CommandResult
from kube_bootstrap.kubeadm.control_plane import (
    APT_SOURCE_FILE,
    CONTAINERD_CONFIG,
    KEYRING_PATH,
    SYSCTL_FILE,
    ControlPlaneBootstrapper,
    ControlPlaneError,
    enable_systemd_cgroup,
)


CONTAINERD_DEFAULT = """\
[plugins."io.containerd.grpc.v1.cri".containerd.runtimes.runc.options]
  SystemdCgroup = false
"""


@pytest.fixture
def session():
    session = MagicMock(spec=requests.Session)
    session.get.return_value.text = "-----BEGIN PGP PUBLIC KEY BLOCK-----"
    return session


@pytest.fixture
def bootstrapper(make_config, mock_runner, session, tmp_path):
    config = make_config({"kubeadm": {"hostname": "kubemaster"}})
    return ControlPlaneBootstrapper(config, mock_runner, session=session, home=tmp_path)


def commands(mock_runner):
    return [c.args[0] for c in mock_runner.run.call_args_list]


def written_files(mock_runner):
    """Map of path to content for every 'tee' call."""
    return {
        c.args[0][1]: c.kwargs["input_text"]
        for c in mock_runner.run.call_args_list
        if c.args[0][0] == "tee"
    }


def test_enable_systemd_cgroup():
    assert "SystemdCgroup = true" in enable_systemd_cgroup(CONTAINERD_DEFAULT)
    assert "SystemdCgroup = false" not in enable_systemd_cgroup(CONTAINERD_DEFAULT)


class TestPipeline:

    def test_step_order(self, bootstrapper):
        assert bootstrapper.build_pipeline().step_names == [
            "set_hostname",
            "install_prerequisites",
            "disable_swap",
            "load_kernel_modules",
            "configure_sysctl",
            "install_containerd",
            "configure_containerd",
            "add_kubernetes_repository",
            "install_kubernetes_packages",
            "initialize_cluster",
            "configure_kubectl",
            "install_network_plugin",
        ]

    def test_failure_stops_pipeline(self, bootstrapper, mock_runner):
        mock_runner.run.side_effect = CommandError("Command failed with exit status 1: hostnamectl")

        result = bootstrapper.run()

        assert result.succeeded is False
        assert result.failed_step == "set_hostname"
        assert mock_runner.run.call_count == 1


class TestHostPreparation:

    def test_set_hostname(self, bootstrapper, mock_runner):
        assert bootstrapper.set_hostname() == "kubemaster"
        assert mock_runner.run.call_args.args[0] == ["hostnamectl", "set-hostname", "kubemaster"]
        assert mock_runner.run.call_args.kwargs["sudo"] is True

    def test_disable_swap(self, bootstrapper, mock_runner):
        bootstrapper.disable_swap()

        assert commands(mock_runner) == [
            ["swapoff", "-a"],
            ["sed", "-i", "/ swap / s/^/#/", "/etc/fstab"],
        ]

    def test_kernel_modules_and_sysctl(self, bootstrapper, mock_runner):
        bootstrapper.load_kernel_modules()
        bootstrapper.configure_sysctl()

        assert ["modprobe", "overlay"] in commands(mock_runner)
        assert ["modprobe", "br_netfilter"] in commands(mock_runner)
        assert "net.ipv4.ip_forward = 1\n" in written_files(mock_runner)[SYSCTL_FILE]
        assert commands(mock_runner)[-1] == ["sysctl", "--system"]

    def test_configure_containerd(self, bootstrapper, mock_runner):
        def run(args, **kwargs):
            stdout = CONTAINERD_DEFAULT if args[:3] == ["containerd", "config", "default"] else ""
            return CommandResult(list(args), 0, stdout, "")

        mock_runner.run.side_effect = run

        bootstrapper.configure_containerd()

        assert "SystemdCgroup = true" in written_files(mock_runner)[CONTAINERD_CONFIG]
        assert ["systemctl", "restart", "containerd"] in commands(mock_runner)


class TestKubernetesPackages:

    def test_repository(self, bootstrapper, mock_runner, session):
        repository = bootstrapper.add_kubernetes_repository()

        assert repository == "https://pkgs.k8s.io/core:/stable:/v1.29/deb/"
        assert session.get.call_args.args[0] == repository + "Release.key"
        gpg = mock_runner.run.call_args_list[0]
        assert gpg.args[0][-2:] == ["-o", KEYRING_PATH]
        assert gpg.kwargs["input_text"].startswith("-----BEGIN PGP")
        assert written_files(mock_runner)[APT_SOURCE_FILE] == (
            f"deb [signed-by={KEYRING_PATH}] {repository} /\n"
        )

    def test_repository_key_download_failure(self, bootstrapper, mock_runner, session):
        session.get.side_effect = requests.ConnectionError("offline")

        with pytest.raises(ControlPlaneError, match="repository key"):
            bootstrapper.add_kubernetes_repository()
        mock_runner.run.assert_not_called()

    def test_packages_are_held(self, bootstrapper, mock_runner):
        bootstrapper.install_kubernetes_packages()

        assert commands(mock_runner)[-1] == ["apt-mark", "hold", "kubelet", "kubeadm", "kubectl"]


class TestClusterInitialization:

    def test_init_runs_when_not_initialized(self, bootstrapper, mock_runner, tmp_path):
        with patch("kube_bootstrap.kubeadm.control_plane.ADMIN_KUBECONFIG",
                   str(tmp_path / "admin.conf")):
            assert bootstrapper.initialize_cluster() is True

        assert mock_runner.run.call_args.args[0] == [
            "kubeadm", "init", "--pod-network-cidr=10.244.0.0/16"
        ]

    def test_init_skipped_when_already_initialized(self, bootstrapper, mock_runner, tmp_path):
        admin_conf = tmp_path / "admin.conf"
        admin_conf.write_text("apiVersion: v1")

        with patch("kube_bootstrap.kubeadm.control_plane.ADMIN_KUBECONFIG", str(admin_conf)):
            assert bootstrapper.initialize_cluster() is False

        mock_runner.run.assert_not_called()

    def test_configure_kubectl(self, bootstrapper, mock_runner, tmp_path):
        target = bootstrapper.configure_kubectl()

        assert target == str(tmp_path / ".kube" / "config")
        assert (tmp_path / ".kube").is_dir()
        assert commands(mock_runner)[-1] == ["chown", f"{os.getuid()}:{os.getgid()}", target]

    def test_network_plugin_runs_as_user(self, bootstrapper, mock_runner, tmp_path):
        bootstrapper.install_network_plugin()

        call = mock_runner.run.call_args
        assert call.args[0][:3] == ["kubectl", "apply", "-f"]
        assert call.kwargs["sudo"] is False
        assert call.kwargs["env"] == {"KUBECONFIG": str(tmp_path / ".kube" / "config")}
