"""Tests for the suggestion validation gates."""

from unittest.mock import MagicMock

import pytest

from fakes import FakeRegistry
from analysis.models import (
    AnalysisSource,
    ConflictAnalysis,
    ConflictRecord,
    ConstraintKind,
    RankRef,
    ReasoningEntry,
    RequiredBy,
    Severity,
)
from analysis.hydration import hydrate_with_ranking
from analysis.ranking import Ranking
from common.errors import ErrorKind, ResolutionError
from constants import Tier
from registry.npm.client import RegistryError
from registry.npm.lockfile_parser import DependentsIndex
from suggestion.validation import SuggestionValidator, check_structure

MANIFEST = {
    "name": "demo",
    "dependencies": {"pkgA": "^2.0.0", "pkgB": "^2.0.0"},
    "devDependencies": {"typescript": "^4.9.0"},
}


def ranked_analysis():
    record = ConflictRecord(
        package_name="pkgB",
        current_version="2.0.0",
        required_by=(
            RequiredBy("pkgA", "2.0.0", ">=3.0.0", ConstraintKind.PEER, False, Severity.WARNING),
        ),
    )
    analysis = ConflictAnalysis.build([record], AnalysisSource.PATTERN)
    service = MagicMock()
    service.get_ranking.side_effect = lambda name: {
        "pkgA": Ranking(800, Tier.OFFICIAL_ECOSYSTEM),
        "pkgB": Ranking(300, Tier.SPECIALIZED),
    }[name]
    return hydrate_with_ranking(analysis, service)


def payload(*suggestions, reasoning=None):
    return {
        "suggestions": [
            {"name": n, "version": v, "isDev": dev, "reason": "peer"} for n, v, dev in suggestions
        ],
        "reasoning": {"updateMade": reasoning or []},
    }


@pytest.fixture
def validator():
    return SuggestionValidator(FakeRegistry({
        "pkgA": ["2.0.0", "2.1.0"],
        "pkgB": ["2.0.0", "3.0.0", "3.1.0"],
        "typescript": ["4.9.5", "5.2.2"],
    }))


class TestStructure:
    """Shape checks raise the retryable format error."""

    @pytest.mark.parametrize("bad", [
        [],
        {},
        {"suggestions": []},
        {"suggestions": [{"name": "pkgB", "version": "3.0.0"}]},
        {"suggestions": [{"name": "pkgB", "version": "3.0.0", "isDev": "no"}]},
        {"suggestions": [{"name": "pkgB", "version": "3.0.0", "isDev": False}],
         "reasoning": {"updateMade": [{"toVersion": "3.0.0"}]}},
    ])
    def test_rejects(self, bad):
        with pytest.raises(ResolutionError) as exc:
            check_structure(bad)
        assert exc.value.kind is ErrorKind.AI_RESPONSE_FORMAT
        assert exc.value.kind.is_retryable
        assert exc.value.details["problem"]

    def test_accepts_minimal_shape(self):
        check_structure({"suggestions": [{"name": "pkgB", "version": "3.0.0", "isDev": False}]})


class TestValidator:
    """The full gate sequence."""

    def test_accepts_and_rectifies_ranks(self, validator):
        reasoning = [{
            "package": {"name": "pkgB", "rank": 5000},
            "fromVersion": "2.0.0",
            "toVersion": "3.0.0",
            "reason": {"name": "pkgA", "rank": 1},
        }]

        suggestions, entries = validator.validate(
            payload(("pkgB", "3.0.0", False), reasoning=reasoning), ranked_analysis(), MANIFEST
        )

        assert [(s.name, s.version) for s in suggestions] == [("pkgB", "3.0.0")]
        assert entries[0].package.rank == 300
        assert entries[0].reason.rank == 800

    def test_unknown_names_rectify_to_unranked(self, validator):
        reasoning = [{"package": {"name": "mystery", "rank": 900}, "toVersion": "1.0.0"}]

        _, entries = validator.validate(
            payload(("pkgB", "3.0.0", False), reasoning=reasoning), ranked_analysis(), MANIFEST
        )

        assert entries[0].package.rank == -1
        assert entries[0].reason.name == "mystery"

    def test_dev_flag_follows_manifest(self, validator):
        suggestions, _ = validator.validate(
            payload(("typescript", "5.2.2", False), ("pkgB", "3.0.0", True)),
            ranked_analysis(),
            MANIFEST,
        )

        flags = {s.name: s.is_dev for s in suggestions}
        assert flags == {"typescript": True, "pkgB": False}

    def test_new_package_keeps_suggested_flag(self, validator):
        validator._registry.packages["eslint"] = ["8.50.0"]

        suggestions, _ = validator.validate(
            payload(("eslint", "8.50.0", True)), ranked_analysis(), MANIFEST
        )

        assert suggestions[0].is_dev is True

    def test_blank_version_is_fatal(self, validator):
        with pytest.raises(ResolutionError) as exc:
            validator.validate(payload(("pkgB", "  ", False)), ranked_analysis(), MANIFEST)

        assert exc.value.kind is ErrorKind.NO_SUITABLE_VERSION
        assert exc.value.kind.is_fatal

    def test_unpublished_versions_listed_together(self, validator):
        with pytest.raises(ResolutionError) as exc:
            validator.validate(
                payload(("pkgB", "9.9.9", False), ("pkgA", "7.0.0", False)),
                ranked_analysis(),
                MANIFEST,
            )

        assert exc.value.kind is ErrorKind.PACKAGE_VERSION_VALIDATION
        names = [i["name"] for i in exc.value.details["invalid"]]
        assert names == ["pkgB", "pkgA"]
        assert "pkgB@9.9.9" in exc.value.message

    def test_registry_failure_counts_as_invalid(self):
        registry = MagicMock()
        registry.version_exists.side_effect = RegistryError("pkgB", "registry returned status 0")

        with pytest.raises(ResolutionError) as exc:
            SuggestionValidator(registry).validate(
                payload(("pkgB", "3.0.0", False)), ranked_analysis(), MANIFEST
            )

        problem = exc.value.details["invalid"][0]["problem"]
        assert problem.startswith("registry lookup failed")

    def test_range_suggestion_that_resolves_is_accepted(self, validator):
        suggestions, _ = validator.validate(
            payload(("pkgB", "^3.0.0", False)), ranked_analysis(), MANIFEST
        )

        assert suggestions[0].version == "^3.0.0"

    def test_no_op_is_rejected(self, validator):
        with pytest.raises(ResolutionError) as exc:
            validator.validate(payload(("pkgA", "^2.0.0", False)), ranked_analysis(), MANIFEST)

        assert exc.value.kind is ErrorKind.NO_NEW_SUGGESTION
        assert exc.value.details["current"] == {"pkgA": "^2.0.0"}

    def test_manifest_is_not_mutated(self, validator):
        before = {k: dict(v) if isinstance(v, dict) else v for k, v in MANIFEST.items()}

        validator.validate(payload(("pkgB", "3.0.0", False)), ranked_analysis(), MANIFEST)

        assert MANIFEST == before

    def test_reason_kept_when_lockfile_knows_no_dependent(self, validator):
        index = DependentsIndex.from_data({
            "lockfileVersion": 3,
            "packages": {"node_modules/other": {"version": "1.0.0", "dependencies": {"x": "1"}}},
        })
        reasoning = [{"package": {"name": "pkgB"}, "toVersion": "3.0.0", "reason": {"name": "pkgA"}}]

        suggestions, entries = validator.validate(
            payload(("pkgB", "3.0.0", False), reasoning=reasoning), ranked_analysis(), MANIFEST, index
        )

        assert suggestions
        assert (entries[0].reason.name, entries[0].reason.rank) == ("pkgA", 800)


class TestDependentsRectification:
    """Cited reasons checked against the lockfile's reverse dependencies."""

    @pytest.fixture
    def index(self):
        return DependentsIndex.from_data({
            "lockfileVersion": 3,
            "packages": {
                "": {"name": "demo", "dependencies": {"pkgA": "^2.0.0", "pkgB": "^2.0.0"}},
                "node_modules/pkgA": {"version": "2.0.0", "peerDependencies": {"pkgB": ">=3.0.0"}},
                "node_modules/pkgB": {"version": "2.0.0"},
                "node_modules/stray": {"version": "1.0.0", "dependencies": {"pkgB": "^2.0.0"}},
            },
        })

    def test_unbacked_reason_is_replaced_by_ranked_dependent(self, validator, index):
        reasoning = [{
            "package": {"name": "pkgB", "rank": 300},
            "fromVersion": "2.0.0",
            "toVersion": "3.0.0",
            "reason": {"name": "typescript", "rank": 999},
        }]

        _, entries = validator.validate(
            payload(("pkgB", "3.0.0", False), reasoning=reasoning), ranked_analysis(), MANIFEST, index
        )

        assert (entries[0].reason.name, entries[0].reason.rank) == ("pkgA", 800)
        assert (entries[0].package.name, entries[0].to_version) == ("pkgB", "3.0.0")
        assert entries[0].from_version == "2.0.0"

    def test_real_dependent_is_kept(self, validator, index):
        reasoning = [{"package": {"name": "pkgB"}, "toVersion": "3.0.0", "reason": {"name": "pkgA"}}]

        _, entries = validator.validate(
            payload(("pkgB", "3.0.0", False), reasoning=reasoning), ranked_analysis(), MANIFEST, index
        )

        assert entries[0].reason.name == "pkgA"

    def test_without_index_reasoning_is_unchanged(self, index):
        analysis = ranked_analysis()
        entries = [ReasoningEntry(RankRef("pkgB", 300), "2.0.0", "3.0.0", RankRef("typescript", -1))]

        assert SuggestionValidator.rectify_dependents(entries, analysis, None) == entries
        assert SuggestionValidator.rectify_dependents(entries, analysis, index)[0].reason.name == "pkgA"
