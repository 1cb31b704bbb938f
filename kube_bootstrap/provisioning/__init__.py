"""Host tooling: packages, kops/kubectl binaries and SSH keys."""
