"""Tests for the tool invocation surface."""

from unittest.mock import MagicMock

import pytest

from common.schema import SchemaError
from constants import Constants
from resolution.models import Outcome, ResolutionResult
from tool import parse_payload, run_tool
from workspace.models import CopyBackStatus


def payload(**overrides):
    data = {
        "repo_path": "/work/demo",
        "update_dependencies": [
            {"name": "react", "version": "18.2.0", "isDev": False, "reason": "upgrade"},
            {"name": "@types/react", "version": "18.2.0", "isDev": True},
        ],
    }
    data.update(overrides)
    return data


class TestParsePayload:
    """Schema validation and request conversion."""

    def test_defaults_max_attempts(self):
        request = parse_payload(payload()).to_request()

        assert request.repo_path == "/work/demo"
        assert request.max_attempts == Constants.DEFAULT_MAX_ATTEMPTS
        assert [(u.name, u.is_dev) for u in request.updates] == [
            ("react", False), ("@types/react", True),
        ]
        assert request.updates[0].reason == "upgrade"

    def test_explicit_max_attempts(self):
        assert parse_payload(payload(maxAttempts=3)).to_request().max_attempts == 3

    @pytest.mark.parametrize("bad,path", [
        ({"update_dependencies": []}, "update_dependencies"),
        ({"maxAttempts": 0}, "maxAttempts"),
        ({"maxAttempts": "10"}, "maxAttempts"),
        ({"repo_path": ""}, "repo_path"),
        ({"update_dependencies": [{"name": "react", "version": "18.2.0"}]}, "update_dependencies/0"),
    ])
    def test_rejects_invalid_payload(self, bad, path):
        with pytest.raises(SchemaError) as exc:
            parse_payload(payload(**bad))
        assert exc.value.path == path

    def test_missing_repo_path(self):
        data = payload()
        del data["repo_path"]

        with pytest.raises(SchemaError):
            parse_payload(data)


class TestRunTool:
    """End-to-end through a stub resolver."""

    def test_returns_report_and_passes_cancel_event(self):
        resolver = MagicMock()
        resolver.resolve.return_value = ResolutionResult(
            success=True,
            outcome=Outcome.SUCCESS,
            attempts_used=1,
            copy_back_status=CopyBackStatus.OK,
            install_log="added 3 packages",
        )
        cancel = object()

        report = run_tool(payload(maxAttempts=4), resolver, cancel)

        request, event = resolver.resolve.call_args[0]
        assert request.max_attempts == 4
        assert event is cancel
        assert report.startswith("✅ Successfully updated dependencies after 1 attempt")

    def test_invalid_payload_never_reaches_resolver(self):
        resolver = MagicMock()

        with pytest.raises(SchemaError):
            run_tool({"repo_path": "/x"}, resolver)
        resolver.resolve.assert_not_called()
