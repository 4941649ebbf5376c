"""
Tests for PipelineSettings loading.
"""

from __future__ import annotations

import pytest

from vehicle_search.config import AbuseSettings, PipelineSettings
from vehicle_search.core.exceptions import ConfigurationError


class TestPipelineSettings:
    def test_defaults(self):
        settings = PipelineSettings()

        assert settings.safety.max_query_length == 500
        assert settings.abuse.auto_block_levels == ["critical"]
        assert settings.abuse.block_durations == {"critical": 3600.0, "high": 1800.0}
        assert settings.session.idle_ttl_seconds == 4 * 3600.0
        assert settings.search.candidate_multiplier == 3
        assert settings.backend.search_url is None
        assert settings.concepts is None
        assert sum(settings.ranking.weights.values()) == pytest.approx(1.0)

    def test_from_dict_none(self):
        assert PipelineSettings.from_dict(None) == PipelineSettings()

    def test_from_dict_sections(self):
        settings = PipelineSettings.from_dict(
            {
                "abuse": {"auto_block_levels": ["critical", "high"]},
                "search": {"rrf_k": 30},
                "concepts": {"quiet": [{"field": "fuelType", "operator": "eq", "value": "Electric"}]},
            }
        )
        assert settings.abuse == AbuseSettings(auto_block_levels=["critical", "high"])
        assert settings.search.rrf_k == 30
        assert "quiet" in settings.concepts

    @pytest.mark.parametrize(
        ("data", "match"),
        [
            ({"logging": {}}, "Unknown configuration section"),
            ({"safety": {"max_length": 10}}, "Unknown option"),
            ({"safety": 10}, "must be a mapping"),
            ({"concepts": ["quiet"]}, "concepts"),
        ],
    )
    def test_from_dict_errors(self, data, match):
        with pytest.raises(ConfigurationError, match=match):
            PipelineSettings.from_dict(data)

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "safety:\n"
            "  requests_per_minute: 20\n"
            "ranking:\n"
            "  max_per_make: 2\n",
            encoding="utf-8",
        )
        settings = PipelineSettings.from_yaml(path)

        assert settings.safety.requests_per_minute == 20
        assert settings.ranking.max_per_make == 2

    def test_from_yaml_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        assert PipelineSettings.from_yaml(path) == PipelineSettings()

    @pytest.mark.parametrize("content", ["safety: [unclosed", "- a list\n- of things\n"])
    def test_from_yaml_invalid(self, tmp_path, content):
        path = tmp_path / "settings.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigurationError):
            PipelineSettings.from_yaml(path)

    def test_from_yaml_missing(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            PipelineSettings.from_yaml(tmp_path / "absent.yaml")

    def test_to_dict_round_trip(self):
        settings = PipelineSettings.from_dict({"session": {"max_messages": 50}})
        data = settings.to_dict()

        assert data["session"]["max_messages"] == 50
        assert PipelineSettings.from_dict(data) == settings
