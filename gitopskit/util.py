"""General helpers: retries, async runs, kubeconfig lookups and small string utilities."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Hashable, Mapping, Sequence

import yaml

log = logging.getLogger(__name__)

INDENTATION = "    "
DEFAULT_RETRIES = 2
DEFAULT_RETRY_SLEEP = 1.0

_APPSET_FIELD_RE = re.compile(r"[./]")
_IP_RE = re.compile(
    r"((25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)"
)


class KubeConfigError(Exception):
    """Raised when a kubeconfig file cannot be read or lacks an entry."""


@dataclass
class RetryOptions:
    """What to retry, how many times and how long to wait between tries.

    A ``retries`` of 0 means the default of 2; a ``sleep`` of 0 means one second.
    """

    func: Callable[[], Any]
    retries: int = 0
    sleep: float = 0.0


@dataclass(frozen=True)
class KubeContext:
    name: str
    current: bool


@dataclass
class Account:
    name: str
    id: str


@dataclass
class User:
    active_account_name: str
    accounts: list[Account] = field(default_factory=list)


def retry(opts: RetryOptions) -> Any:
    """Call ``opts.func`` until it succeeds or the tries run out.

    Returns what the function returned; raises the last error if every try failed.
    """
    retries = opts.retries or DEFAULT_RETRIES
    delay = opts.sleep or DEFAULT_RETRY_SLEEP
    last_error: Exception | None = None
    for attempt in range(retries):
        try:
            return opts.func()
        except Exception as exc:  # noqa: BLE001 - any failure is retried
            last_error = exc
            log.warning("Function call failed, trying again (retry=%d, err=%s)", attempt, exc)
            time.sleep(delay)
    if last_error is not None:
        raise last_error
    return None


def die(err: BaseException | None, *args: str) -> None:
    """Raise ``err`` if it is set, prefixed by the first cause string when given."""
    if err is None:
        return
    if args:
        raise RuntimeError(f"{args[0]}: {err}") from err
    raise err


def doc(text: str, binary_name: str) -> str:
    """Replace ``<BIN>`` with the binary name and tabs with uniform indentation."""
    return text.replace("<BIN>", binary_name).replace("\t", INDENTATION)


class AsyncRunner:
    """Runs callables in background threads and reports the first failure."""

    def __init__(self) -> None:
        self._threads: list[threading.Thread] = []
        self._errors: list[Exception] = []
        self._lock = threading.Lock()

    def run(self, func: Callable[[], Any]) -> None:
        def target() -> None:
            try:
                func()
            except Exception as exc:  # noqa: BLE001 - collected and re-raised by wait()
                with self._lock:
                    self._errors.append(exc)

        thread = threading.Thread(target=target, daemon=True)
        self._threads.append(thread)
        thread.start()

    def wait(self) -> None:
        """Wait for every operation; raise the first error any of them raised."""
        for thread in self._threads:
            thread.join()
        with self._lock:
            if self._errors:
                raise self._errors[0]


def escape_appset_field_name(field: str) -> str:
    return _APPSET_FIELD_RE.sub("_", field)


def _kubeconfig_paths(kubeconfig: str) -> list[Path]:
    if kubeconfig:
        return [Path(kubeconfig)]
    env = os.environ.get("KUBECONFIG", "")
    if env:
        return [Path(p) for p in env.split(os.pathsep) if p]
    return [Path.home() / ".kube" / "config"]


def load_kube_config(kubeconfig: str = "") -> dict[str, Any]:
    """Load a kubeconfig into ``current_context``, ``contexts`` and ``clusters``.

    ``contexts`` and ``clusters`` map names to their entries. Missing files give
    an empty configuration; with several files the first definition wins.
    """
    config: dict[str, Any] = {"current_context": "", "contexts": {}, "clusters": {}}
    for path in _kubeconfig_paths(kubeconfig):
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise KubeConfigError(f"failed reading kubeconfig file: {exc}") from exc
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise KubeConfigError(f"failed reading kubeconfig file: {exc}") from exc
        if not isinstance(data, dict):
            raise KubeConfigError(f"failed reading kubeconfig file: {path} is not a mapping")
        if not config["current_context"]:
            config["current_context"] = data.get("current-context") or ""
        for section, key in (("contexts", "context"), ("clusters", "cluster")):
            for entry in data.get(section) or []:
                if not isinstance(entry, dict) or "name" not in entry:
                    raise KubeConfigError(
                        f"failed reading kubeconfig file: invalid {section} entry in {path}"
                    )
                config[section].setdefault(entry["name"], entry.get(key) or {})
    return config


def kube_contexts(kubeconfig: str = "") -> list[KubeContext]:
    """All contexts, the current one first and the rest sorted by name."""
    conf = load_kube_config(kubeconfig)
    contexts = [KubeContext(name, name == conf["current_context"]) for name in conf["contexts"]]
    return sorted(contexts, key=lambda c: (not c.current, c.name))


def check_existing_context(context_name: str, kubeconfig: str = "") -> bool:
    return any(ctx.name == context_name for ctx in kube_contexts(kubeconfig))


def kube_current_server(kubeconfig: str = "") -> str:
    return kube_server_by_context_name("", kubeconfig)


def kube_current_context_name(kubeconfig: str = "") -> str:
    return load_kube_config(kubeconfig)["current_context"]


def kube_context_name_by_server(server: str, kubeconfig: str = "") -> str:
    conf = load_kube_config(kubeconfig)
    for name in sorted(conf["contexts"]):
        cluster = conf["clusters"].get(conf["contexts"][name].get("cluster"))
        if cluster is not None and cluster.get("server") == server:
            return name
    raise KubeConfigError(f'Context not found for server "{server}"')


def kube_server_by_context_name(context_name: str, kubeconfig: str = "") -> str:
    conf = load_kube_config(kubeconfig)
    if not context_name:
        context_name = conf["current_context"]
    context = conf["contexts"].get(context_name)
    if context is None:
        raise KubeConfigError(f'kubeconfig file missing context "{context_name}"')
    cluster_name = context.get("cluster", "")
    cluster = conf["clusters"].get(cluster_name)
    if cluster is None:
        raise KubeConfigError(f'kubeconfig file missing cluster "{cluster_name}"')
    return cluster.get("server", "")


def current_account(user: User) -> str:
    """The id of the user's active account."""
    for account in user.accounts:
        if account.name == user.active_account_name:
            return account.id
    raise LookupError(f'account id for "{user.active_account_name}" not found')


def git_login_url(ingress_host: str, user: str, account: str) -> str:
    """The URL that starts a git login through the app proxy."""
    prefix = "" if ingress_host.startswith("http") else "https://"
    return (
        f"{prefix}{ingress_host}/app-proxy/api/git-auth/github"
        f"?userId={user}&accountId={account}"
    )


def decorate_error_with_docs_link(err: BaseException, link: str) -> RuntimeError:
    """A new error whose message points to the given documentation link."""
    decorated = RuntimeError(f"{err}\nfor more information: {link}")
    decorated.__cause__ = err
    return decorated


def is_ip(s: str) -> bool:
    return _IP_RE.fullmatch(s) is not None


def string_index_of(items: Sequence[str], val: str) -> int:
    try:
        return list(items).index(val)
    except ValueError:
        return -1


def generate_ingress_path_for_demo_git_event_source(
    webhooks_root_path: str, runtime_name: str, object_name: str
) -> str:
    return f"{webhooks_root_path}/{runtime_name}/{object_name}"


def struct_to_map(obj: Any) -> dict[str, Any]:
    """Convert an object to a plain dict by way of its JSON form."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        obj = dataclasses.asdict(obj)
    result = json.loads(json.dumps(obj))
    if not isinstance(result, dict):
        raise TypeError(f"cannot convert {type(obj).__name__} to a map")
    return result


def reverse_map(mapping: Mapping[Hashable, Hashable]) -> dict[Hashable, Hashable]:
    return {value: key for key, value in mapping.items()}