"""Workflow manifests that run a workflow template."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

WORKFLOW_API_VERSION = "argoproj.io/v1alpha1"
WORKFLOW_KIND = "Workflow"


@dataclass
class CreateWorkflowOptions:
    generate_name: str
    spec_wf_template_ref_name: str
    parameters: list[str] = field(default_factory=list)


def create_workflow(opts: CreateWorkflowOptions) -> dict[str, Any]:
    """A Workflow manifest referring to a template, with named parameters."""
    return {
        "apiVersion": WORKFLOW_API_VERSION,
        "kind": WORKFLOW_KIND,
        "metadata": {"generateName": opts.generate_name},
        "spec": {
            "workflowTemplateRef": {"name": opts.spec_wf_template_ref_name},
            "arguments": {"parameters": [{"name": name} for name in opts.parameters]},
        },
    }