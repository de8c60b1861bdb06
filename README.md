# gitopskit

Building blocks for installing a GitOps runtime on a Kubernetes cluster.
The package works on plain Python data: dicts shaped like Kubernetes
manifests, kubeconfig files and `kustomization.yaml` files. Its logic can
therefore be used and tested without a live cluster.

## Installation

```
pip install gitopskit
```

To run the tests:

```
pip install "gitopskit[test]"
pytest
```

## Modules

### `gitopskit.util`

- Kubeconfig lookups. `load_kube_config` reads the given file. Without a file
  it reads the files listed in `KUBECONFIG`, or `~/.kube/config` when that is
  unset. The other lookups are `kube_contexts` (the current context first,
  then the rest by name), `check_existing_context`, `kube_current_context_name`,
  `kube_current_server`, `kube_server_by_context_name` and
  `kube_context_name_by_server`. Missing entries raise `KubeConfigError`.
- `retry(RetryOptions(func, retries, sleep))` calls `func` until it succeeds.
  A `retries` of 0 means 2 tries, and a `sleep` of 0 means one second between
  tries. When every try fails, the last error is raised.
- `AsyncRunner` runs callables in threads. `wait()` joins them all and raises
  the first error any of them raised.
- `die(err, cause)` raises `err`, with the cause as a prefix when one is given.
- `doc(text, binary_name)` replaces `<BIN>` with the binary name and each tab
  with four spaces.
- Small helpers: `escape_appset_field_name`, `is_ip`, `string_index_of`,
  `reverse_map`, `struct_to_map`, `current_account` (with `User` and `Account`),
  `git_login_url`, `decorate_error_with_docs_link` and
  `generate_ingress_path_for_demo_git_event_source`.

### `gitopskit.httputil`

`new_request(method, url, headers, body)` returns a `urllib.request.Request`.
Its body is `body` encoded as JSON, or empty when `body` is None.

### `gitopskit.workflow`

`create_workflow(CreateWorkflowOptions(...))` builds an Argo `Workflow`
manifest. The manifest refers to a workflow template and lists the named
parameters.

### `gitopskit.kust`

- `read_kustomization(directory)` reads the directory's `kustomization.yaml`.
- `write_kustomization(kust, directory)` writes it.
- `replace_resource(kust, from_url, to_url)` swaps one resource for another.
  When there is only a single resource, that resource is replaced.

Failures raise `KustomizationError`.

### `gitopskit.routing`

- `create_ingress` builds an `Ingress` manifest and `create_http_proxy` builds
  a Contour `HTTPProxy` manifest. Both take a `CreateRouteOpts` whose paths are
  `RoutePath` values, with `RoutePathType` setting how each path matches.
- `route_paths_to_ingress_paths` turns `RoutePath` values into `IngressPath`
  values.
- `get_ingress_controller(name)` returns a `RoutingController`. The subclasses
  `IngressControllerALB` and `IngressControllerNginxEnterprise` add their
  annotations to an Ingress in `decorate`.
- `select_ingress_controller(ingress_classes, requested_ingress_class, silent, select)`
  picks one class from a list of IngressClass manifests whose controller is one
  of the `IngressControllerType` values. It raises `RoutingError` when no
  usable class can be chosen.

### `gitopskit.routes`

- `create_internal_router_route` and `create_internal_router_internal_route`
  build the routes to the runtime's internal router. Each returns a name
  (`"ingress"` or `"http-proxy"`) and the manifest. The names, paths and the
  service come from a `RouteSettings`.
- `select_gateway_controller(gateway, gateway_class)` checks Gateway and
  GatewayClass manifests against the supported `GatewayControllerType` values.
- `get_gateway_controller` returns the controller for a gateway controller name.
- `PathMatchType` and `HTTPRouteRule` describe Gateway API path matching.

### `gitopskit.openshift`

- `service_accounts(runtime_name)` lists the runtime's service accounts.
- `scc_manifest(runtime_name, scc_name)` builds a `SecurityContextConstraints`
  manifest for those service accounts.
- `prepare_openshift_cluster(namespace_exists, write_manifest, runtime_name, scc_name)`
  writes that manifest only when an `openshift` namespace exists. It returns
  whether the cluster is OpenShift.

### `gitopskit.kube`

- `parse_quantity` reads resource quantities such as `500m` or `4Gi` into a
  comparable `Quantity`.
- `compare_kube_aware_versions` orders versions with GA above beta and beta
  above alpha. `check_kube_version` raises `ClusterRequirementsError` when a
  version lies outside the allowed range.
- `default_rbac_validations` returns `RbacValidation` values, and
  `build_access_reviews` turns them into `SelfSubjectAccessReview` manifests.
- `check_rbac(reviews, submit)` sends each review through `submit` and reports
  every denial. `describe_denied_access` formats the message for one denied
  review.
- `check_node` and `check_nodes` compare the CPU and memory of Node manifests
  with a `ValidationRequest`.

### `gitopskit.jobs`

- `prepare_env_vars` builds container environment entries.
- `job_manifest(LaunchJobOptions(...))` builds a single-container `Job` manifest.
- `container_state` reports a `ContainerState` for a pod.
- `check_pod_last_state` raises `JobError` when a finished pod exited with a
  non-zero code.
- `job_selector` returns the label selector for a job's pods.
- `find_cluster_secret` finds a cluster secret by its `name` data field.

## Example

```python
from gitopskit.routing import (
    CreateRouteOpts, RoutePath, RoutePathType, create_ingress, select_ingress_controller,
)
from gitopskit.kube import ValidationRequest, check_nodes
from gitopskit.util import is_ip

classes = [{"metadata": {"name": "nginx"}, "spec": {"controller": "k8s.io/ingress-nginx"}}]
controller, ingress_class = select_ingress_controller(classes)   # ingress_class == "nginx"

opts = CreateRouteOpts(
    name="demo-ingress",
    namespace="demo",
    ingress_class=ingress_class,
    hostname="demo.example.com",
    paths=[RoutePath(path="/webhooks", path_type=RoutePathType.PREFIX,
                     service_name="internal-router", service_port=80)],
    ingress_controller=controller,
)
ingress = create_ingress(opts)
controller.decorate(ingress)

nodes = [{"metadata": {"name": "node-1"},
          "status": {"capacity": {"cpu": "4", "memory": "16Gi"}}}]
fitting = check_nodes(nodes, ValidationRequest(cpu="2", memory_size="5Gi"))  # ["node-1"]

assert is_ip("10.0.0.1")
```

## What the package does not do

- It does not talk to a cluster. Cluster-facing steps take the data or a
  callable from the caller. Examples are the manifests handed to
  `select_ingress_controller` and `check_nodes`, the `submit` function of
  `check_rbac`, and the `namespace_exists` and `write_manifest` callables of
  `prepare_openshift_cluster`.
- It does not launch or wait for tester jobs. It only builds and inspects
  their manifests.
- It does not send HTTP requests, open a browser, or run a kustomize build.
- It has no command-line interface.