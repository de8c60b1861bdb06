"""Reading, editing and writing kustomization files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

KUSTOMIZATION_FILE_NAME = "kustomization.yaml"


class KustomizationError(Exception):
    """Raised when a kustomization cannot be read or edited."""


def read_kustomization(directory: str | Path) -> dict[str, Any]:
    """Load the kustomization file of ``directory``."""
    file_name = Path(directory) / KUSTOMIZATION_FILE_NAME
    try:
        data = yaml.safe_load(file_name.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise KustomizationError(
            f'failed reading kustomization from "{file_name}": {exc}'
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise KustomizationError(
            f'failed reading kustomization from "{file_name}": not a mapping'
        )
    return data


def replace_resource(kust: dict[str, Any], from_url: str, to_url: str) -> None:
    """Replace ``from_url`` with ``to_url`` in the kustomization's resources.

    A kustomization with a single resource has it replaced even if it differs.
    """
    resources = kust.setdefault("resources", [])
    if from_url in resources:
        resources[resources.index(from_url)] = to_url
    elif len(resources) == 1:
        resources[0] = to_url
    else:
        raise KustomizationError(
            f'base kustomization does not contain expected resource "{from_url}"'
        )


def write_kustomization(kust: dict[str, Any], directory: str | Path) -> None:
    """Write ``kust`` as the kustomization file of ``directory``."""
    file_name = Path(directory) / KUSTOMIZATION_FILE_NAME
    file_name.write_text(yaml.safe_dump(kust, default_flow_style=False), encoding="utf-8")