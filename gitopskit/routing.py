"""Ingress and HTTPProxy manifests, and choosing an ingress controller."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

log = logging.getLogger(__name__)

INGRESS_API_VERSION = "networking.k8s.io/v1"
HTTP_PROXY_API_VERSION = "projectcontour.io/v1"


class RoutingError(Exception):
    """Raised when no usable ingress class or controller can be chosen."""


class RoutePathType(str, enum.Enum):
    EXACT = "Exact"
    PREFIX = "Prefix"
    REGEX = "Regex"


class IngressControllerType(str, enum.Enum):
    NGINX_COMMUNITY = "k8s.io/ingress-nginx"
    NGINX_ENTERPRISE = "nginx.org/ingress-controller"
    ISTIO = "istio.io/ingress-controller"
    TRAEFIK = "traefik.io/ingress-controller"
    AMBASSADOR = "getambassador.io/ingress-controller"
    ALB = "ingress.k8s.aws/alb"
    NGINX_CODEFRESH = "k8s.io/ingress-nginx-codefresh"


SUPPORTED_INGRESS_CONTROLLERS: tuple[IngressControllerType, ...] = tuple(IngressControllerType)

_INGRESS_PATH_TYPES = {
    RoutePathType.EXACT: "Exact",
    RoutePathType.PREFIX: "Prefix",
    RoutePathType.REGEX: "ImplementationSpecific",
}


@dataclass(frozen=True)
class RoutePath:
    service_name: str
    service_port: int
    path_type: RoutePathType
    path: str


@dataclass(frozen=True)
class IngressPath:
    path: str
    path_type: str
    service_name: str
    service_port: int


@dataclass
class RoutingController:
    """A controller that handles routes; the base one leaves them unchanged."""

    name: str

    def decorate(self, route: dict[str, Any]) -> None:
        """Adjust a route manifest for this controller."""


def _ingress_annotations(route: Any) -> dict[str, str] | None:
    if not isinstance(route, dict) or route.get("kind") != "Ingress":
        log.error("Cant decorate, this is not an ingress!")
        return None
    metadata = route.setdefault("metadata", {})
    annotations = metadata.get("annotations")
    if annotations is None:
        annotations = metadata["annotations"] = {}
    return annotations


class IngressControllerALB(RoutingController):
    def decorate(self, route: dict[str, Any]) -> None:
        annotations = _ingress_annotations(route)
        if annotations is None:
            return
        annotations["alb.ingress.kubernetes.io/group.name"] = "csdp-ingress"
        annotations["alb.ingress.kubernetes.io/scheme"] = "internet-facing"
        annotations["alb.ingress.kubernetes.io/target-type"] = "ip"
        annotations["alb.ingress.kubernetes.io/listen-ports"] = '[{"HTTP": 80}, {"HTTPS": 443}]'


class IngressControllerNginxEnterprise(RoutingController):
    def decorate(self, route: dict[str, Any]) -> None:
        annotations = _ingress_annotations(route)
        if annotations is None:
            return
        annotations["nginx.org/mergeable-ingress-type"] = "minion"


@dataclass
class CreateRouteOpts:
    name: str = ""
    runtime_name: str = ""
    namespace: str = ""
    ingress_class: str = ""
    hostname: str = ""
    paths: list[RoutePath] = field(default_factory=list)
    annotations: dict[str, str] | None = None
    ingress_controller: RoutingController = field(default_factory=lambda: RoutingController(""))
    gateway_name: str = ""
    gateway_namespace: str = ""


def get_ingress_controller(name: str) -> RoutingController:
    """The controller for a controller name; unknown names get the plain one."""
    if name == IngressControllerType.ALB.value:
        return IngressControllerALB(name)
    if name == IngressControllerType.NGINX_ENTERPRISE.value:
        return IngressControllerNginxEnterprise(name)
    return RoutingController(name)


def route_paths_to_ingress_paths(route_paths: Iterable[RoutePath]) -> list[IngressPath]:
    return [
        IngressPath(
            path=p.path,
            path_type=_INGRESS_PATH_TYPES.get(RoutePathType(p.path_type), ""),
            service_name=p.service_name,
            service_port=int(p.service_port),
        )
        for p in route_paths
    ]


def _metadata(name: str, namespace: str, annotations: Mapping[str, str] | None) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    if name:
        metadata["name"] = name
    if namespace:
        metadata["namespace"] = namespace
    if annotations is not None:
        metadata["annotations"] = annotations
    return metadata


def create_ingress(opts: CreateRouteOpts) -> dict[str, Any]:
    """An Ingress manifest with one rule for the host; trims a trailing '/' from the name."""
    opts.name = opts.name.removesuffix("/")
    rule: dict[str, Any] = {}
    if opts.hostname:
        rule["host"] = opts.hostname
    if opts.paths:
        rule["http"] = {
            "paths": [
                {
                    "path": p.path,
                    "pathType": p.path_type,
                    "backend": {
                        "service": {"name": p.service_name, "port": {"number": p.service_port}}
                    },
                }
                for p in route_paths_to_ingress_paths(opts.paths)
            ]
        }
    spec: dict[str, Any] = {"rules": [rule]}
    if opts.ingress_class:
        spec["ingressClassName"] = opts.ingress_class
    return {
        "apiVersion": INGRESS_API_VERSION,
        "kind": "Ingress",
        "metadata": _metadata(opts.name, opts.namespace, opts.annotations),
        "spec": spec,
    }


def create_http_proxy(opts: CreateRouteOpts) -> dict[str, Any]:
    """An HTTPProxy manifest with a websocket-enabled prefix route per path."""
    spec: dict[str, Any] = {"virtualhost": {"fqdn": opts.hostname}}
    routes = [
        {
            "conditions": [{"prefix": p.path}],
            "services": [{"name": p.service_name, "port": int(p.service_port)}],
            "enableWebsockets": True,
        }
        for p in opts.paths
    ]
    if routes:
        spec["routes"] = routes
    return {
        "apiVersion": HTTP_PROXY_API_VERSION,
        "kind": "HTTPProxy",
        "metadata": _metadata(opts.name, opts.namespace, opts.annotations),
        "spec": spec,
    }


def select_ingress_controller(
    ingress_classes: Iterable[Mapping[str, Any]],
    requested_ingress_class: str = "",
    silent: bool = False,
    select: Callable[[Sequence[str]], str] | None = None,
) -> tuple[RoutingController, str]:
    """Choose an ingress class of a supported controller and its controller.

    ``ingress_classes`` are IngressClass manifests. With several candidates and
    none requested, ``select`` is asked to pick one unless ``silent`` is set.
    """
    supported = {c.value for c in SUPPORTED_INGRESS_CONTROLLERS}
    names: list[str] = []
    controllers: dict[str, RoutingController] = {}
    ingress_class = ""

    for ic in ingress_classes:
        controller = (ic.get("spec") or {}).get("controller", "")
        if controller not in supported:
            continue
        name = (ic.get("metadata") or {}).get("name", "")
        names.append(name)
        controllers[name] = get_ingress_controller(controller)
        if requested_ingress_class == name:
            ingress_class = requested_ingress_class

    if requested_ingress_class:
        if not ingress_class:
            raise RoutingError(f"ingress class '{requested_ingress_class}' is not supported")
    elif not names:
        raise RoutingError("no ingress classes of the supported types were found")
    elif len(names) == 1:
        log.info("Using ingress class: %s", names[0])
        ingress_class = names[0]
    else:
        if silent or select is None:
            raise RoutingError(
                "there are multiple ingress controllers on your cluster, "
                "please add the --ingress-class flag and define its value"
            )
        ingress_class = select(list(names))

    controller = controllers.get(ingress_class)
    if controller is None:
        raise RoutingError(f"ingress class '{ingress_class}' is not supported")

    if controller.name == IngressControllerType.NGINX_ENTERPRISE.value:
        log.warning(
            "You are using the NGINX enterprise edition (nginx.org/ingress-controller) as your "
            "ingress controller. To successfully install the runtime, configure all required "
            "settings."
        )

    return controller, ingress_class