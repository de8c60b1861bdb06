"""Preparing an OpenShift cluster with a security context constraint."""

from __future__ import annotations

import logging
from typing import Any, Callable

log = logging.getLogger(__name__)

OPENSHIFT_NAMESPACE = "openshift"
SCC_PRIORITY = 15
BOOTSTRAP_DIR = "bootstrap"
CLUSTER_RESOURCES_DIR = "cluster-resources"
IN_CLUSTER_DIR = "in-cluster"
SCC_FILE_NAME = "scc.yaml"
SCC_COMMIT_MESSAGE = "Created scc"

_SERVICE_ACCOUNTS = (
    "argo-events-sa",
    "argo-events-webhook-sa",
    "argo-server",
    "argocd-redis",
    "cap-app-proxy",
)


def service_accounts(runtime_name: str) -> list[str]:
    """The service account users the runtime's SCC admits."""
    return [f"system:serviceaccount:{runtime_name}:{sa}" for sa in _SERVICE_ACCOUNTS]


def scc_manifest(runtime_name: str, scc_name: str) -> dict[str, Any]:
    """A SecurityContextConstraints manifest for the runtime's service accounts."""
    return {
        "apiVersion": "security.openshift.io/v1",
        "kind": "SecurityContextConstraints",
        "metadata": {"name": scc_name, "namespace": runtime_name},
        "allowPrivilegedContainer": False,
        "runAsUser": {"type": "RunAsAny"},
        "seLinuxContext": {"type": "RunAsAny"},
        "users": service_accounts(runtime_name),
        # Takes precedence over the default SCCs.
        "priority": SCC_PRIORITY,
    }


def scc_manifest_path() -> str:
    return "/".join((BOOTSTRAP_DIR, CLUSTER_RESOURCES_DIR, IN_CLUSTER_DIR, SCC_FILE_NAME))


def prepare_openshift_cluster(
    namespace_exists: Callable[[str], bool],
    write_manifest: Callable[[str, dict[str, Any], str], None],
    runtime_name: str,
    scc_name: str,
) -> bool:
    """Add the runtime's SCC if the cluster is OpenShift; tell whether it is.

    ``namespace_exists`` checks a namespace on the cluster; ``write_manifest``
    stores a manifest at a repository path and commits it with a message.
    """
    if not namespace_exists(OPENSHIFT_NAMESPACE):
        return False

    log.info("Running on an Openshift cluster")
    manifest = scc_manifest(runtime_name, scc_name)
    log.info("Pushing scc manifest")
    write_manifest(scc_manifest_path(), manifest, SCC_COMMIT_MESSAGE)
    return True