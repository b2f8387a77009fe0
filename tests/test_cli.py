"""Tests for CLI parsing, configuration layering and the entry point."""

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

import peerfix
from args import build_updates, parse_args, parse_update_token
from cli_config import ConfigError, load_config_file
from config import ResolverConfig
from constants import Constants, ExitCodes
from resolution.models import Outcome, ResolutionResult
from workspace.models import CopyBackStatus


class TestUpdateTokens:
    """``name@version`` parsing."""

    def test_plain_and_scoped(self):
        assert parse_update_token("react@18.2.0").name == "react"
        scoped = parse_update_token("@types/react@^18.0.0", ["@types/react"])
        assert (scoped.name, scoped.target_version, scoped.is_dev) == ("@types/react", "^18.0.0", True)

    @pytest.mark.parametrize("token", ["react", "react@", "@types/react", ""])
    def test_rejects_missing_version(self, token):
        with pytest.raises(ValueError):
            parse_update_token(token)

    def test_build_updates_marks_dev(self):
        updates = build_updates(["react@18.2.0", "jest@29.7.0"], ["jest"])

        assert [u.is_dev for u in updates] == [False, True]


class TestParseArgs:
    """argparse surface."""

    def test_required_and_defaults(self):
        args = parse_args(["-r", "/work/demo", "-u", "react@18.2.0", "-u", "react-dom@18.2.0"])

        assert args.REPO_PATH == "/work/demo"
        assert args.UPDATES == ["react@18.2.0", "react-dom@18.2.0"]
        assert args.LOG_LEVEL == "INFO"
        assert args.MAX_ATTEMPTS is None
        assert args.BASELINE_INSTALL is None

    def test_negative_flags(self):
        args = parse_args([
            "-r", ".", "-u", "a@1.0.0", "--no-baseline-install", "--no-copy-back-on-failure",
        ])

        assert args.BASELINE_INSTALL is False
        assert args.COPY_BACK_ON_FAILURE is False

    def test_missing_update_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["-r", "."])


class TestResolverConfig:
    """Precedence: CLI over environment over file over defaults."""

    def test_defaults(self):
        config = ResolverConfig.from_sources()

        assert config.max_attempts == Constants.DEFAULT_MAX_ATTEMPTS
        assert config.install_command == Constants.INSTALL_COMMAND
        assert config.copy_back_on_failure is True

    def test_layering(self):
        args = parse_args(["-r", ".", "-u", "a@1.0.0", "--max-attempts", "7"])
        file_data = {"max_attempts": 3, "max_workers": 2, "install_timeout": 60,
                     "install_command": "pnpm install --frozen-lockfile"}
        environ = {"PEERFIX_MAX_WORKERS": "4", "PEERFIX_INSTALL_TIMEOUT": "90"}

        config = ResolverConfig.from_sources(args, file_data, environ)

        assert config.max_attempts == 7
        assert config.max_workers == 4
        assert config.install_timeout == 90.0
        assert config.install_command == ["pnpm", "install", "--frozen-lockfile"]

    def test_openai_environment(self):
        environ = {"OPENAI_API_KEY": "sk-test", "OPENAI_MODEL": "gpt-test"}

        config = ResolverConfig.from_sources(None, {}, environ)

        assert config.openai_api_key == "sk-test"
        assert config.openai_model == "gpt-test"

    def test_invalid_value_falls_through(self):
        config = ResolverConfig.from_sources(None, {"max_workers": 3}, {"PEERFIX_MAX_WORKERS": "many"})

        assert config.max_workers == 3

    def test_booleans_and_ranking_section(self):
        config = ResolverConfig.from_sources(
            None,
            {"baseline_install": "no", "ranking": {"modifiers": {"popularity": [0, 10]}}},
            {"PEERFIX_COPY_BACK_ON_FAILURE": "false"},
        )

        assert config.baseline_install is False
        assert config.copy_back_on_failure is False
        assert config.ranking_policy == {"modifiers": {"popularity": [0, 10]}}

    def test_max_attempts_clamped(self):
        assert ResolverConfig.from_sources(None, {"max_attempts": 0}).max_attempts == 1


class TestConfigFile:
    """YAML and JSON config loading."""

    def test_yaml_resolver_section(self, tmp_path):
        path = tmp_path / "peerfix.yml"
        path.write_text("resolver:\n  max_attempts: 12\n  ranking:\n    modifiers:\n      popularity: [0, 20]\n")

        data = load_config_file(str(path))

        assert data["max_attempts"] == 12
        assert data["ranking"]["modifiers"]["popularity"] == [0, 20]

    def test_json_whole_document(self, tmp_path):
        path = tmp_path / "peerfix.json"
        path.write_text(json.dumps({"max_workers": 2}))

        assert load_config_file(str(path)) == {"max_workers": 2}

    def test_empty_and_absent(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config_file(str(path)) == {}
        assert load_config_file(None) == {}

    @pytest.mark.parametrize("content", ["- a\n- b\n", "resolver: 5\n", "key: [unclosed\n"])
    def test_unusable_documents(self, tmp_path, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content)

        with pytest.raises(ConfigError):
            load_config_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config_file(str(tmp_path / "nope.yml"))


class TestMain:
    """Entry point wiring and exit codes."""

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setenv("PEERFIX_LOG_LEVEL", "INFO")
        with patch("peerfix.configure_logging"):
            yield

    @pytest.mark.parametrize("success,outcome,status,code", [
        (True, Outcome.SUCCESS, CopyBackStatus.OK, ExitCodes.SUCCESS),
        (True, Outcome.SUCCESS, CopyBackStatus.PARTIAL, ExitCodes.EXIT_WARNINGS),
        (False, Outcome.EXHAUSTED, CopyBackStatus.OK, ExitCodes.RESOLUTION_FAILED),
        (False, Outcome.CANCELLED, CopyBackStatus.OK, ExitCodes.INTERRUPTED),
    ])
    def test_exit_code_for(self, success, outcome, status, code):
        result = ResolutionResult(success, outcome, 1, copy_back_status=status)

        assert peerfix.exit_code_for(result) is code

    @patch("peerfix.build_resolver")
    def test_prints_json_and_exits(self, mock_build, tmp_path, capsys):
        resolver = MagicMock()
        resolver.resolve.return_value = ResolutionResult(
            True, Outcome.SUCCESS, 1, copy_back_status=CopyBackStatus.OK
        )
        mock_build.return_value = resolver

        with pytest.raises(SystemExit) as exc:
            peerfix.main(["-r", str(tmp_path), "-u", "react@18.2.0", "--json", "--max-attempts", "5"])

        assert exc.value.code == 0
        request = resolver.resolve.call_args[0][0]
        assert request.max_attempts == 5
        assert json.loads(capsys.readouterr().out)["userOutcome"] == "success"

    @patch("peerfix.build_resolver")
    def test_copy_warning_logged_by_module_logger(self, mock_build, tmp_path, caplog):
        resolver = MagicMock()
        resolver.resolve.return_value = ResolutionResult(
            True, Outcome.SUCCESS, 1, copy_back_status=CopyBackStatus.PARTIAL
        )
        mock_build.return_value = resolver

        with caplog.at_level(logging.WARNING, logger="peerfix"):
            with pytest.raises(SystemExit) as exc:
                peerfix.main(["-r", str(tmp_path), "-u", "react@18.2.0"])

        assert exc.value.code == ExitCodes.EXIT_WARNINGS.value
        assert [r.name for r in caplog.records if "copying results back" in r.getMessage()] == ["peerfix"]

    def test_bad_config_file_exits_with_file_error(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            peerfix.main(["-r", str(tmp_path), "-u", "react@18.2.0", "-c", str(tmp_path / "nope.yml")])

        assert exc.value.code == ExitCodes.FILE_ERROR.value

    @patch("peerfix.build_resolver")
    def test_bad_update_token_exits_before_resolving(self, mock_build, tmp_path):
        with pytest.raises(SystemExit) as exc:
            peerfix.main(["-r", str(tmp_path), "-u", "react"])

        assert exc.value.code == ExitCodes.FILE_ERROR.value
        mock_build.assert_not_called()


class TestBuildResolver:
    """Collaborator wiring from a config."""

    def test_wires_with_injected_engine(self, tmp_path):
        from fakes import ScriptedEngine
        from resolution.orchestrator import Resolver

        config = ResolverConfig(cache_path=str(tmp_path / "cache.db"), max_workers=2)

        assert isinstance(peerfix.build_resolver(config, engine=ScriptedEngine()), Resolver)
