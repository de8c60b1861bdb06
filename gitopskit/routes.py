"""Routes to the internal router, and choosing a gateway controller."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from gitopskit.routing import (
    CreateRouteOpts,
    RoutePath,
    RoutePathType,
    RoutingController,
    RoutingError,
    create_http_proxy,
    create_ingress,
)

log = logging.getLogger(__name__)

HTTP_PROXY_ROUTE_NAME = "http-proxy"
INGRESS_ROUTE_NAME = "ingress"


class GatewayControllerType(str, enum.Enum):
    CONTOUR = "projectcontour.io/projectcontour/contour"


SUPPORTED_GATEWAY_CONTROLLERS: tuple[GatewayControllerType, ...] = tuple(GatewayControllerType)


class PathMatchType(str, enum.Enum):
    EXACT = "Exact"
    PATH_PREFIX = "PathPrefix"
    REGULAR_EXPRESSION = "RegularExpression"


@dataclass(frozen=True)
class HTTPRouteRule:
    path: str
    path_type: PathMatchType
    service_name: str
    service_port: int


@dataclass(frozen=True)
class RouteSettings:
    """Names, paths and the service that routes to the internal router use."""

    internal_router_internal_ingress_name: str
    internal_router_ingress_name: str
    app_proxy_ingress_path: str
    webhooks_ingress_path: str
    argo_wf_ingress_path: str
    internal_router_service_name: str
    internal_router_service_port: int


def get_gateway_controller(name: str) -> RoutingController:
    """The controller for a gateway controller name."""
    return RoutingController(name)


def _spec_field(manifest: Mapping[str, Any], key: str, what: str) -> str:
    spec = manifest.get("spec")
    if not isinstance(spec, Mapping) or not isinstance(spec.get(key), str):
        raise RoutingError(f"{what} resource has no spec.{key}")
    return spec[key]


def select_gateway_controller(
    gateway: Mapping[str, Any], gateway_class: Mapping[str, Any]
) -> RoutingController:
    """The controller of a gateway's class, if it is a supported one.

    ``gateway`` and ``gateway_class`` are Gateway and GatewayClass manifests.
    """
    class_name = _spec_field(gateway, "gatewayClassName", "gateway")
    actual_name = (gateway_class.get("metadata") or {}).get("name")
    if actual_name is not None and actual_name != class_name:
        raise RoutingError(
            f'gatewayclass "{actual_name}" is not the class "{class_name}" of the gateway'
        )

    controller_name = _spec_field(gateway_class, "controllerName", "gatewayclass")
    for controller in SUPPORTED_GATEWAY_CONTROLLERS:
        if controller.value == controller_name:
            log.info('GatewayController detected: "%s" !', controller_name)
            return get_gateway_controller(controller.value)

    raise RoutingError(f"Gateway controller {controller_name} is not supported")


def _router_path(settings: RouteSettings, path: str) -> RoutePath:
    return RoutePath(
        service_name=settings.internal_router_service_name,
        service_port=settings.internal_router_service_port,
        path_type=RoutePathType.PREFIX,
        path=path,
    )


def _build_route(
    opts: CreateRouteOpts, name: str, paths: list[RoutePath], use_gateway_api: bool
) -> tuple[str, dict[str, Any]]:
    route_opts = CreateRouteOpts(
        name=name,
        runtime_name=opts.runtime_name,
        namespace=opts.namespace,
        ingress_class=opts.ingress_class,
        hostname=opts.hostname,
        paths=paths,
        annotations=opts.annotations,
        ingress_controller=opts.ingress_controller,
        gateway_name=opts.gateway_name,
        gateway_namespace=opts.gateway_namespace,
    )
    if use_gateway_api:
        # An HTTPProxy stands in for an HTTPRoute, which lacks websocket support.
        route, route_name = create_http_proxy(route_opts), HTTP_PROXY_ROUTE_NAME
    else:
        route, route_name = create_ingress(route_opts), INGRESS_ROUTE_NAME
    opts.ingress_controller.decorate(route)
    return route_name, route


def create_internal_router_internal_route(
    opts: CreateRouteOpts, settings: RouteSettings, use_gateway_api: bool = False
) -> tuple[str, dict[str, Any]]:
    """The route that sends the app-proxy path to the internal router."""
    return _build_route(
        opts,
        opts.runtime_name + settings.internal_router_internal_ingress_name,
        [_router_path(settings, settings.app_proxy_ingress_path)],
        use_gateway_api,
    )


def create_internal_router_route(
    opts: CreateRouteOpts,
    settings: RouteSettings,
    use_gateway_api: bool = False,
    include_internal_routes: bool = False,
    only_webhooks: bool = False,
) -> tuple[str, dict[str, Any]]:
    """The route that sends webhooks, and unless told otherwise more, to the internal router."""
    paths = [_router_path(settings, settings.webhooks_ingress_path)]
    if not only_webhooks:
        paths.append(_router_path(settings, settings.argo_wf_ingress_path))
        if include_internal_routes:
            paths.append(_router_path(settings, settings.app_proxy_ingress_path))
    return _build_route(
        opts,
        opts.runtime_name + settings.internal_router_ingress_name,
        paths,
        use_gateway_api,
    )