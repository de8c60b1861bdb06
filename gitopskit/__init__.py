"""Helpers for preparing GitOps runtimes on Kubernetes: kubeconfig lookups, routing
manifests, cluster requirement checks and tester job manifests."""

__version__ = "0.1.0"