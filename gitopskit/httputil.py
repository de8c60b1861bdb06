"""Building HTTP requests with JSON bodies."""

from __future__ import annotations

import dataclasses
import json
import re
import urllib.request
from typing import Any, Mapping

_TOKEN_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


def new_request(
    method: str,
    url: str,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
) -> urllib.request.Request:
    """A request whose body is ``body`` encoded as JSON (empty when ``body`` is None)."""
    if not method:
        method = "GET"
    if not _TOKEN_RE.fullmatch(method):
        raise ValueError(f"invalid method {method!r}")

    data = b""
    if body is not None:
        if dataclasses.is_dataclass(body) and not isinstance(body, type):
            body = dataclasses.asdict(body)
        data = json.dumps(
            body, separators=(",", ":"), sort_keys=True, ensure_ascii=False
        ).encode("utf-8")

    request = urllib.request.Request(url, data=data, method=method)
    for key, value in (headers or {}).items():
        request.add_header(key, value)
    return request