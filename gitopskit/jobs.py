"""Tester job manifests, their pods' states and cluster secret lookups."""

from __future__ import annotations

import base64
import binascii
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

log = logging.getLogger(__name__)

JOB_API_VERSION = "batch/v1"
CONTROLLER_UID_LABEL = "controller-uid"
CLUSTER_SECRET_TYPE_LABEL = "argocd.argoproj.io/secret-type"
CLUSTER_SECRET_TYPE = "cluster"


class JobError(Exception):
    """Raised when a tester job fails or its manifest lacks what is needed."""


class ContainerState(str, enum.Enum):
    """Where the first container of a job's pod stands."""

    PENDING = "pending"
    CREATING = "creating"
    WAITING = "waiting"
    RUNNING = "running"
    TERMINATED = "terminated"
    UNKNOWN = "unknown"


@dataclass
class LaunchJobOptions:
    namespace: str
    container_name: str
    generate_name: str
    image: str
    env: list[dict[str, str]] = field(default_factory=list)
    restart_policy: str = "Never"
    back_off_limit: int = 0


def prepare_env_vars(variables: Mapping[str, str]) -> list[dict[str, str]]:
    """Container environment entries, one per variable."""
    return [{"name": name, "value": value} for name, value in variables.items()]


def job_manifest(opts: LaunchJobOptions) -> dict[str, Any]:
    """A Job manifest running a single container with the given options."""
    container: dict[str, Any] = {"name": opts.container_name, "image": opts.image}
    if opts.env:
        container["env"] = [dict(entry) for entry in opts.env]
    return {
        "apiVersion": JOB_API_VERSION,
        "kind": "Job",
        "metadata": {"generateName": opts.generate_name, "namespace": opts.namespace},
        "spec": {
            "template": {
                "spec": {
                    "containers": [container],
                    "restartPolicy": opts.restart_policy,
                }
            },
            "backoffLimit": opts.back_off_limit,
        },
    }


def _first_container_status(pod: Mapping[str, Any]) -> Mapping[str, Any] | None:
    statuses = (pod.get("status") or {}).get("containerStatuses") or []
    return statuses[0] if statuses else None


def container_state(pod: Mapping[str, Any] | None) -> ContainerState:
    """The state of a pod's first container; PENDING when there is no pod yet."""
    if pod is None:
        return ContainerState.PENDING
    status = _first_container_status(pod)
    if status is None:
        return ContainerState.CREATING
    state = status.get("state") or {}
    if state.get("terminated") is not None:
        return ContainerState.TERMINATED
    if state.get("waiting") is not None:
        return ContainerState.WAITING
    if state.get("running") is not None:
        return ContainerState.RUNNING
    return ContainerState.UNKNOWN


def check_pod_last_state(pod: Mapping[str, Any], logs: str | None = None) -> Mapping[str, Any]:
    """Return the terminated state of a finished tester pod.

    Raises JobError when its container exited with a non-zero code; ``logs``,
    the pod's output, is logged first when given.
    """
    status = _first_container_status(pod)
    terminated = ((status or {}).get("state") or {}).get("terminated")
    if terminated is None:
        raise JobError("tester pod has not terminated")
    if terminated.get("exitCode", 0) != 0:
        if logs is not None:
            log.error("%s", logs.strip("\n"))
        message = (terminated.get("message") or "").strip("\n")
        raise JobError(f"Network test failed with: {message}")
    return terminated


def _secret_name(secret: Mapping[str, Any]) -> str | None:
    raw = (secret.get("data") or {}).get("name")
    if raw is None:
        return None
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


def find_cluster_secret(secrets: Iterable[Mapping[str, Any]], name: str) -> Mapping[str, Any]:
    """The cluster secret whose ``name`` data field equals ``name``.

    Only secrets labelled as cluster secrets are considered; ``data`` values
    are base64 text as in manifests, or already decoded bytes.
    """
    for secret in secrets:
        labels = (secret.get("metadata") or {}).get("labels") or {}
        if labels.get(CLUSTER_SECRET_TYPE_LABEL) != CLUSTER_SECRET_TYPE:
            continue
        if _secret_name(secret) == name:
            return secret
    raise LookupError(f'cluster secret "{name}" not found')


def job_selector(job: Mapping[str, Any]) -> str:
    """The label selector that finds the pods a job created."""
    match_labels = ((job.get("spec") or {}).get("selector") or {}).get("matchLabels") or {}
    uid = match_labels.get(CONTROLLER_UID_LABEL)
    if uid is None:
        raise JobError("job has no controller-uid selector")
    return f"{CONTROLLER_UID_LABEL}={uid}"