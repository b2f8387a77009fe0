"""Tool invocation surface for the resolver.

Accepts the bookkeeping layer's JSON payload, validates it with Draft-07
JSON Schema, runs one resolution and returns the human-readable report.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from constants import Constants
from common.schema import validate
from analysis.models import DependencyUpdate
from resolution.models import ResolutionRequest, ResolutionResult
from resolution.report import render_report

logger = logging.getLogger(__name__)

TOOL_NAME = "update_dependencies"

UPDATE_DEPENDENCIES_INPUT: Dict[str, Any] = {
    "type": "object",
    "required": ["repo_path", "update_dependencies"],
    "properties": {
        "repo_path": {"type": "string", "minLength": 1},
        "update_dependencies": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["name", "version", "isDev"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "version": {"type": "string", "minLength": 1},
                    "isDev": {"type": "boolean"},
                    "reason": {"type": ["string", "null"]},
                    "fromVersion": {"type": ["string", "null"]},
                },
            },
        },
        "maxAttempts": {"type": "integer", "minimum": 1},
    },
}


@dataclass
class UpdateDependenciesInput:
    repo_path: str
    update_dependencies: List[Dict[str, Any]] = field(default_factory=list)
    maxAttempts: int = Constants.DEFAULT_MAX_ATTEMPTS

    def to_request(self) -> ResolutionRequest:
        updates = tuple(
            DependencyUpdate(
                name=item["name"],
                target_version=item["version"],
                is_dev=bool(item["isDev"]),
                reason=item.get("reason"),
                from_version=item.get("fromVersion"),
            )
            for item in self.update_dependencies
        )
        return ResolutionRequest(self.repo_path, updates, self.maxAttempts)


def parse_payload(payload: Dict[str, Any]) -> UpdateDependenciesInput:
    """Validate the payload strictly; raises ``SchemaError`` on the first problem."""
    validate(UPDATE_DEPENDENCIES_INPUT, payload, label="input")
    return UpdateDependenciesInput(
        repo_path=payload["repo_path"],
        update_dependencies=list(payload["update_dependencies"]),
        maxAttempts=payload.get("maxAttempts", Constants.DEFAULT_MAX_ATTEMPTS),
    )


def invoke(payload: Dict[str, Any], resolver, cancel_event=None) -> ResolutionResult:
    """Run the resolver for ``payload`` and return the structured result."""
    request = parse_payload(payload).to_request()
    logger.info("%s: %d update(s) for %s", TOOL_NAME, len(request.updates), request.repo_path)
    return resolver.resolve(request, cancel_event)


def run_tool(payload: Dict[str, Any], resolver, cancel_event: Optional[Any] = None) -> str:
    """Run the resolver for ``payload`` and return the report text."""
    return render_report(invoke(payload, resolver, cancel_event))
