"""Checks that a cluster meets the minimum requirements of a runtime."""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Callable, Iterable, Mapping, Sequence

log = logging.getLogger(__name__)

REQUIREMENTS_ERROR_MESSAGE = "cluster does not meet minimum requirements"
ACCESS_REVIEW_API_VERSION = "authorization.k8s.io/v1"
RBAC_GROUP = "rbac.authorization.k8s.io"

_FORMAT_WRONG = (
    "quantities must match the regular expression "
    "'^([+-]?[0-9.]+)([eEinumkKMGTP]*[-+]?[0-9]*)$'"
)
_SUFFIX_WRONG = "unable to parse quantity's suffix"

_NUMBER_RE = re.compile(r"([+-]?)(\d*)(?:\.(\d*))?")
_EXPONENT_RE = re.compile(r"[eE]([+-]?\d+)")
_KUBE_VERSION_RE = re.compile(r"v(\d+)(?:(alpha|beta)(\d+))?")

_BINARY_SUFFIXES = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}
_DECIMAL_SUFFIXES = {
    "n": Fraction(1, 10**9),
    "u": Fraction(1, 10**6),
    "m": Fraction(1, 10**3),
    "": Fraction(1),
    "k": Fraction(10**3),
    "M": Fraction(10**6),
    "G": Fraction(10**9),
    "T": Fraction(10**12),
    "P": Fraction(10**15),
    "E": Fraction(10**18),
}

_VERSION_TYPE_RANK = {"alpha": 0, "beta": 1, "": 2}


class ClusterRequirementsError(Exception):
    """Raised when a cluster does not meet the runtime's requirements."""

    def __init__(self, message: str, problems: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.problems = list(problems)


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Quantity:
    """A resource quantity such as ``500m`` or ``4Gi``, compared by value."""

    value: Fraction
    text: str = "0"

    def __str__(self) -> str:
        return self.text

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Quantity):
            return NotImplemented
        return self.value == other.value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Quantity):
            return NotImplemented
        return self.value < other.value

    def __hash__(self) -> int:
        return hash(self.value)


@dataclass(frozen=True)
class RbacValidation:
    resource: str
    verbs: tuple[str, ...]
    namespace: str = ""
    group: str = ""


@dataclass
class ValidationRequest:
    cpu: str = ""
    memory_size: str = ""
    rbac: list[RbacValidation] = field(default_factory=list)


def parse_quantity(text: str) -> Quantity:
    """Parse a resource quantity; raises ValueError when it is malformed."""
    text = str(text).strip()
    match = _NUMBER_RE.match(text)
    if not text or match is None:
        raise ValueError(_FORMAT_WRONG)
    sign, whole, frac = match.group(1), match.group(2), match.group(3) or ""
    if not whole and not frac:
        raise ValueError(_FORMAT_WRONG)

    value = Fraction(int(whole or "0"))
    if frac:
        value += Fraction(int(frac), 10 ** len(frac))
    if sign == "-":
        value = -value

    suffix = text[match.end():]
    if suffix in _BINARY_SUFFIXES:
        multiplier = Fraction(_BINARY_SUFFIXES[suffix])
    elif suffix in _DECIMAL_SUFFIXES:
        multiplier = _DECIMAL_SUFFIXES[suffix]
    else:
        exponent = _EXPONENT_RE.fullmatch(suffix)
        if exponent is None:
            raise ValueError(_SUFFIX_WRONG)
        multiplier = Fraction(10) ** int(exponent.group(1))

    return Quantity(value * multiplier, text)


def _parse_kube_version(version: str) -> tuple[int, int, int] | None:
    match = _KUBE_VERSION_RE.fullmatch(version)
    if match is None:
        return None
    version_type = match.group(2) or ""
    minor = int(match.group(3)) if version_type else 0
    return _VERSION_TYPE_RANK[version_type], int(match.group(1)), minor


def compare_kube_aware_versions(v1: str, v2: str) -> int:
    """Compare kube-like versions (``v1``, ``v2beta1``): GA over beta over alpha.

    Positive when ``v1`` is the greater. Strings that are not kube-like sort
    after kube-like ones and, between themselves, in reverse string order.
    """
    if v1 == v2:
        return 0
    parsed1 = _parse_kube_version(v1)
    parsed2 = _parse_kube_version(v2)
    if parsed1 is None and parsed2 is None:
        return (v2 > v1) - (v2 < v1)
    if parsed1 is None:
        return -1
    if parsed2 is None:
        return 1
    rank1, major1, minor1 = parsed1
    rank2, major2, minor2 = parsed2
    if rank1 != rank2:
        return rank1 - rank2
    if major1 != major2:
        return major1 - major2
    return minor1 - minor2


def check_kube_version(version: str, min_version: str, max_version: str) -> None:
    """Raise ClusterRequirementsError if ``version`` lies outside the bounds."""
    min_delta = compare_kube_aware_versions(min_version, version)
    max_delta = compare_kube_aware_versions(max_version, version)
    if min_delta < 0 or max_delta > 0:
        raise ClusterRequirementsError(
            f"{REQUIREMENTS_ERROR_MESSAGE}: cluster's server version must be between "
            f"{min_version} and {max_version}"
        )


def default_rbac_validations(namespace: str) -> list[RbacValidation]:
    """The permissions a runtime needs in its namespace."""
    write = ("create", "update", "delete")
    return [
        RbacValidation("ServiceAccount", ("create", "delete"), namespace),
        RbacValidation("ConfigMap", write, namespace),
        RbacValidation("Service", write, namespace),
        RbacValidation("Role", write, namespace, RBAC_GROUP),
        RbacValidation("RoleBinding", write, namespace, RBAC_GROUP),
        RbacValidation("persistentvolumeclaims", write, namespace),
        RbacValidation("pods", write, namespace),
    ]


def build_access_reviews(rbac: Iterable[RbacValidation]) -> list[dict[str, Any]]:
    """One SelfSubjectAccessReview manifest per resource and verb."""
    reviews = []
    for validation in rbac:
        for verb in validation.verbs:
            attributes = {"resource": validation.resource, "verb": verb}
            if validation.group:
                attributes["group"] = validation.group
            if validation.namespace:
                attributes["namespace"] = validation.namespace
            reviews.append(
                {
                    "apiVersion": ACCESS_REVIEW_API_VERSION,
                    "kind": "SelfSubjectAccessReview",
                    "spec": {"resourceAttributes": attributes},
                }
            )
    return reviews


def describe_denied_access(review: Mapping[str, Any]) -> str:
    """The message for an access review that was not allowed."""
    attributes = (review.get("spec") or {}).get("resourceAttributes") or {}
    verb = attributes.get("verb", "")
    group = attributes.get("group", "")
    resource = attributes.get("resource", "")
    namespace = attributes.get("namespace", "")
    message = f"Insufficient permission, {verb} {group}/{resource} is not allowed"
    if namespace:
        message += f" on namespace {namespace}"
    return message


def _go_list(items: Sequence[str]) -> str:
    return "[" + " ".join(items) + "]"


def check_rbac(
    reviews: Iterable[Mapping[str, Any]],
    submit: Callable[[Mapping[str, Any]], Mapping[str, Any]],
) -> None:
    """Submit every review; raise ClusterRequirementsError listing what was denied.

    ``submit`` sends a review to the cluster and returns the answered review.
    """
    problems: list[str] = []
    for review in reviews:
        try:
            response = submit(review)
        except Exception as exc:  # noqa: BLE001 - every failure is reported
            problems.append(str(exc))
            continue
        if not (response.get("status") or {}).get("allowed", False):
            problems.append(describe_denied_access(review))
    if problems:
        raise ClusterRequirementsError(
            f"{REQUIREMENTS_ERROR_MESSAGE}: failed testing rbac: {_go_list(problems)}",
            problems,
        )


def _capacity(capacity: Mapping[str, Any], key: str) -> Quantity:
    raw = capacity.get(key)
    if raw is None:
        return Quantity(Fraction(0), "0")
    return parse_quantity(str(raw))


def check_node(node: Mapping[str, Any], req: ValidationRequest) -> list[str]:
    """What a node manifest lacks in CPU and memory; empty when it has enough."""
    result: list[str] = []
    name = (node.get("metadata") or {}).get("name", "")
    capacity = (node.get("status") or {}).get("capacity") or {}
    for label, key, required_text in (
        ("CPU", "cpu", req.cpu),
        ("Memory", "memory", req.memory_size),
    ):
        if not required_text:
            continue
        try:
            required = parse_quantity(required_text)
            current = _capacity(capacity, key)
        except ValueError as exc:
            result.append(str(exc))
            return result
        if current < required:
            result.append(
                f"Insufficiant {label} on node {name}, current: {current} - required: {required}"
            )
    return result


def check_nodes(nodes: Sequence[Mapping[str, Any]], req: ValidationRequest) -> list[str]:
    """Names of the nodes that meet the request; raises if there are none."""
    if not nodes:
        raise ClusterRequirementsError(f"{REQUIREMENTS_ERROR_MESSAGE}: No nodes in cluster")
    problems: list[str] = []
    fitting: list[str] = []
    for node in nodes:
        node_problems = check_node(node, req)
        if node_problems:
            problems.extend(node_problems)
        else:
            fitting.append((node.get("metadata") or {}).get("name", ""))
    if not fitting:
        raise ClusterRequirementsError(
            f"{REQUIREMENTS_ERROR_MESSAGE}: {_go_list(problems)}", problems
        )
    return fitting