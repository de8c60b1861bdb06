import pytest
import yaml

from gitopskit.util import (
    Account,
    AsyncRunner,
    KubeConfigError,
    KubeContext,
    RetryOptions,
    User,
    check_existing_context,
    current_account,
    decorate_error_with_docs_link,
    die,
    doc,
    escape_appset_field_name,
    generate_ingress_path_for_demo_git_event_source,
    git_login_url,
    is_ip,
    kube_context_name_by_server,
    kube_contexts,
    kube_current_context_name,
    kube_current_server,
    kube_server_by_context_name,
    load_kube_config,
    retry,
    reverse_map,
    string_index_of,
    struct_to_map,
)


@pytest.fixture
def kubeconfig(tmp_path):
    data = {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "prod",
        "clusters": [
            {"name": "c-prod", "cluster": {"server": "https://prod.example.com"}},
            {"name": "c-dev", "cluster": {"server": "https://dev.example.com"}},
        ],
        "contexts": [
            {"name": "dev", "context": {"cluster": "c-dev", "user": "u"}},
            {"name": "alpha", "context": {"cluster": "c-dev", "user": "u"}},
            {"name": "prod", "context": {"cluster": "c-prod", "user": "u"}},
            {"name": "broken", "context": {"cluster": "c-missing", "user": "u"}},
        ],
    }
    path = tmp_path / "config"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_doc_replaces_binary_and_tabs():
    assert doc("run <BIN>\tnow <BIN>", "cf") == "run cf    now cf"


def test_escape_appset_field_name():
    result = escape_appset_field_name("a.b/c")
    assert result == "a_b_c"
    assert len(result) == len("a.b/c")


@pytest.mark.parametrize(
    "value,expected",
    [
        ("10.0.0.1", True),
        ("255.255.255.255", True),
        ("256.1.1.1", False),
        ("1.2.3", False),
        ("1.2.3.4\n", False),
        ("host.example.com", False),
    ],
)
def test_is_ip(value, expected):
    assert is_ip(value) is expected


def test_string_index_of():
    items = ["a", "b", "c"]
    assert string_index_of(items, "b") == 1
    assert string_index_of(items, "z") == -1


def test_reverse_map_round_trip():
    mapping = {"github": "gh", "gitlab": "gl"}
    reversed_map = reverse_map(mapping)
    assert reversed_map["gh"] == "github"
    assert reverse_map(reversed_map) == mapping


def test_struct_to_map_from_dataclass():
    account = Account(name="main", id="42")
    assert struct_to_map(account) == {"name": "main", "id": "42"}


def test_struct_to_map_rejects_non_object():
    with pytest.raises(TypeError):
        struct_to_map([1, 2])


def test_retry_succeeds_after_failure():
    calls = []

    def func():
        calls.append(1)
        if len(calls) < 2:
            raise ValueError("fail")
        return "ok"

    assert retry(RetryOptions(func=func, retries=3, sleep=0.001)) == "ok"
    assert len(calls) == 2


def test_retry_raises_last_error_with_default_retries():
    calls = []

    def func():
        calls.append(1)
        raise ValueError(f"fail {len(calls)}")

    with pytest.raises(ValueError, match="fail 2"):
        retry(RetryOptions(func=func, sleep=0.001))
    assert len(calls) == 2


def test_die_with_cause():
    err = ValueError("boom")
    with pytest.raises(RuntimeError, match="^reading: boom$") as exc_info:
        die(err, "reading")
    assert exc_info.value.__cause__ is err


def test_die_without_cause_raises_same_error():
    err = ValueError("boom")
    with pytest.raises(ValueError) as exc_info:
        die(err)
    assert exc_info.value is err


def test_async_runner_runs_all():
    results = []
    runner = AsyncRunner()
    for i in range(5):
        runner.run(lambda i=i: results.append(i))
    runner.wait()
    assert sorted(results) == [0, 1, 2, 3, 4]


def test_async_runner_reports_error():
    runner = AsyncRunner()
    runner.run(lambda: None)

    def failing():
        raise ValueError("bad")

    runner.run(failing)
    with pytest.raises(ValueError, match="bad"):
        runner.wait()


def test_kube_contexts_current_first_then_sorted(kubeconfig):
    assert kube_contexts(kubeconfig) == [
        KubeContext("prod", True),
        KubeContext("alpha", False),
        KubeContext("broken", False),
        KubeContext("dev", False),
    ]


def test_check_existing_context(kubeconfig):
    assert check_existing_context("dev", kubeconfig) is True
    assert check_existing_context("nope", kubeconfig) is False


def test_current_context_and_server(kubeconfig):
    assert kube_current_context_name(kubeconfig) == "prod"
    assert kube_current_server(kubeconfig) == "https://prod.example.com"
    assert kube_server_by_context_name("dev", kubeconfig) == "https://dev.example.com"


def test_server_by_missing_context(kubeconfig):
    with pytest.raises(KubeConfigError, match='kubeconfig file missing context "nope"'):
        kube_server_by_context_name("nope", kubeconfig)


def test_server_by_context_missing_cluster(kubeconfig):
    with pytest.raises(KubeConfigError, match='kubeconfig file missing cluster "c-missing"'):
        kube_server_by_context_name("broken", kubeconfig)


def test_context_name_by_server(kubeconfig):
    assert kube_context_name_by_server("https://prod.example.com", kubeconfig) == "prod"
    name = kube_context_name_by_server("https://dev.example.com", kubeconfig)
    assert kube_server_by_context_name(name, kubeconfig) == "https://dev.example.com"
    with pytest.raises(KubeConfigError, match="Context not found for server"):
        kube_context_name_by_server("https://other.example.com", kubeconfig)


def test_missing_kubeconfig_is_empty(tmp_path):
    path = str(tmp_path / "absent")
    assert kube_contexts(path) == []
    assert load_kube_config(path)["current_context"] == ""


def test_malformed_kubeconfig(tmp_path):
    path = tmp_path / "config"
    path.write_text("- just\n- a list\n")
    with pytest.raises(KubeConfigError, match="failed reading kubeconfig file"):
        load_kube_config(str(path))


def test_current_account():
    user = User("second", [Account("first", "1"), Account("second", "2")])
    assert current_account(user) == "2"
    with pytest.raises(LookupError, match='account id for "missing" not found'):
        current_account(User("missing", []))


def test_git_login_url():
    url = git_login_url("example.com", "u1", "a1")
    assert url == "https://example.com/app-proxy/api/git-auth/github?userId=u1&accountId=a1"
    assert git_login_url("http://example.com", "u1", "a1").startswith("http://example.com/")


def test_decorate_error_with_docs_link():
    err = ValueError("boom")
    decorated = decorate_error_with_docs_link(err, "https://docs.example.com")
    assert str(decorated) == "boom\nfor more information: https://docs.example.com"
    assert decorated.__cause__ is err


def test_generate_ingress_path():
    path = generate_ingress_path_for_demo_git_event_source("/webhooks", "rt", "push-github")
    assert path == "/webhooks/rt/push-github"