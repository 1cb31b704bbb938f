"""kubeadm control plane setup on a single host."""
