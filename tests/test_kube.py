import pytest

from gitopskit.kube import (
    ClusterRequirementsError,
    Quantity,
    RbacValidation,
    ValidationRequest,
    build_access_reviews,
    check_kube_version,
    check_node,
    check_nodes,
    check_rbac,
    compare_kube_aware_versions,
    default_rbac_validations,
    describe_denied_access,
    parse_quantity,
)


def _node(name, cpu=None, memory=None):
    capacity = {}
    if cpu is not None:
        capacity["cpu"] = cpu
    if memory is not None:
        capacity["memory"] = memory
    return {"metadata": {"name": name}, "status": {"capacity": capacity}}


@pytest.mark.parametrize(
    "a, b",
    [("1", "1000m"), ("1k", "1000"), ("1Ki", "1024"), ("1.5", "1500m"), ("1e3", "1k"), (".5", "500m")],
)
def test_parse_quantity_equal_values(a, b):
    assert parse_quantity(a) == parse_quantity(b)


def test_parse_quantity_ordering():
    assert parse_quantity("500Mi") < parse_quantity("1Gi")
    assert parse_quantity("2") > parse_quantity("1900m")
    assert parse_quantity("-1") < parse_quantity("0")


def test_parse_quantity_keeps_text():
    assert str(parse_quantity("4Gi")) == "4Gi"
    assert isinstance(parse_quantity("4Gi"), Quantity)


@pytest.mark.parametrize("text", ["", "abc", "1Xi", "1e", "."])
def test_parse_quantity_rejects_malformed(text):
    with pytest.raises(ValueError):
        parse_quantity(text)


@pytest.mark.parametrize(
    "greater, lesser",
    [("v2", "v1"), ("v1", "v1beta2"), ("v1beta2", "v1beta1"), ("v1beta1", "v1alpha1"), ("v1", "foo")],
)
def test_compare_kube_aware_versions_order(greater, lesser):
    assert compare_kube_aware_versions(greater, lesser) > 0
    assert compare_kube_aware_versions(lesser, greater) < 0


def test_compare_kube_aware_versions_equal_and_reversed_strings():
    assert compare_kube_aware_versions("v1.20.0", "v1.20.0") == 0
    assert compare_kube_aware_versions("1.20", "1.21") > 0


def test_check_kube_version_below_minimum():
    with pytest.raises(ClusterRequirementsError) as info:
        check_kube_version("v1.17.0", "v1.18.0", "v1.25.0")
    assert "must be between v1.18.0 and v1.25.0" in str(info.value)
    assert str(info.value).startswith("cluster does not meet minimum requirements")


def test_check_kube_version_above_maximum():
    with pytest.raises(ClusterRequirementsError):
        check_kube_version("v1.26.0", "v1.18.0", "v1.25.0")


def test_default_rbac_validations():
    rbac = default_rbac_validations("runtime")
    assert [r.resource for r in rbac] == [
        "ServiceAccount",
        "ConfigMap",
        "Service",
        "Role",
        "RoleBinding",
        "persistentvolumeclaims",
        "pods",
    ]
    assert all(r.namespace == "runtime" for r in rbac)
    assert {r.group for r in rbac if r.resource.startswith("Role")} == {"rbac.authorization.k8s.io"}


def test_build_access_reviews_one_per_verb():
    rbac = default_rbac_validations("ns")
    reviews = build_access_reviews(rbac)
    assert len(reviews) == sum(len(r.verbs) for r in rbac)
    first = reviews[0]["spec"]["resourceAttributes"]
    assert first == {"resource": "ServiceAccount", "verb": "create", "namespace": "ns"}
    assert reviews[0]["kind"] == "SelfSubjectAccessReview"


def test_build_access_reviews_without_namespace():
    reviews = build_access_reviews([RbacValidation("nodes", ("list",))])
    assert reviews[0]["spec"]["resourceAttributes"] == {"resource": "nodes", "verb": "list"}


def test_describe_denied_access():
    review = build_access_reviews([RbacValidation("Role", ("create",), "ns", "rbac.authorization.k8s.io")])[0]
    assert describe_denied_access(review) == (
        "Insufficient permission, create rbac.authorization.k8s.io/Role is not allowed on namespace ns"
    )
    bare = build_access_reviews([RbacValidation("pods", ("delete",))])[0]
    assert describe_denied_access(bare) == "Insufficient permission, delete /pods is not allowed"


def test_check_rbac_all_allowed_submits_every_review():
    reviews = build_access_reviews(default_rbac_validations("ns"))
    submitted = []

    def submit(review):
        submitted.append(review)
        return {"status": {"allowed": True}}

    check_rbac(reviews, submit)
    assert submitted == reviews


def test_check_rbac_reports_denied_and_errors():
    reviews = build_access_reviews([RbacValidation("pods", ("create", "delete"), "ns")])

    def submit(review):
        if review["spec"]["resourceAttributes"]["verb"] == "create":
            raise RuntimeError("boom")
        return {"status": {"allowed": False}}

    with pytest.raises(ClusterRequirementsError) as info:
        check_rbac(reviews, submit)
    assert info.value.problems == [
        "boom",
        "Insufficient permission, delete /pods is not allowed on namespace ns",
    ]
    assert "failed testing rbac" in str(info.value)


def test_check_node_enough():
    req = ValidationRequest(cpu="2", memory_size="4Gi")
    assert check_node(_node("a", cpu="4", memory="8Gi"), req) == []


def test_check_node_insufficient_cpu():
    req = ValidationRequest(cpu="2")
    assert check_node(_node("node-a", cpu="1"), req) == [
        "Insufficiant CPU on node node-a, current: 1 - required: 2"
    ]


def test_check_node_missing_memory_counts_as_zero():
    req = ValidationRequest(memory_size="4Gi")
    problems = check_node(_node("node-b"), req)
    assert len(problems) == 1
    assert problems[0].startswith("Insufficiant Memory on node node-b")


def test_check_node_bad_requirement_stops():
    req = ValidationRequest(cpu="bogus", memory_size="4Gi")
    problems = check_node(_node("n", cpu="1"), req)
    assert len(problems) == 1
    assert "quantities must match" in problems[0]


def test_check_nodes_returns_fitting_nodes():
    req = ValidationRequest(cpu="2")
    nodes = [_node("small", cpu="1"), _node("big", cpu="4")]
    assert check_nodes(nodes, req) == ["big"]


def test_check_nodes_none_fit():
    req = ValidationRequest(cpu="2")
    with pytest.raises(ClusterRequirementsError) as info:
        check_nodes([_node("small", cpu="1")], req)
    assert info.value.problems == ["Insufficiant CPU on node small, current: 1 - required: 2"]


def test_check_nodes_empty_cluster():
    with pytest.raises(ClusterRequirementsError) as info:
        check_nodes([], ValidationRequest())
    assert str(info.value) == "cluster does not meet minimum requirements: No nodes in cluster"