"""kube-bootstrap - Main Package.

This package provisions, validates and tears down Kubernetes clusters
with kops on AWS, or with kubeadm on a single pre-provisioned host.
"""

__version__ = "1.0.0"
