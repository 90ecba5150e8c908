from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from coloring_images.cli import app, resolve_config
from coloring_images.gen.config import ConfigError

runner = CliRunner()


def write_config(tmp_path: Path, extra: str = "") -> Path:
    config_file = tmp_path / "coloring.toml"
    config_file.write_text(f"""
default_provider = "placeholder"

[providers.placeholder]

[[strategy.priorities]]
id = "placeholder"
priority = 0
timeout = 10

[cache]
backend = "sql"
url = "sqlite:///{(tmp_path / 'cache.db').as_posix()}"
{extra}
""")
    return config_file


class TestCli:
    def test_generate_prints_json(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)

        result = runner.invoke(
            app, ["--config", str(config_file), "generate", "animals", "cat", "--width", "128", "--height", "128"]
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout[result.stdout.index("{"):])
        assert payload["provider"] == "placeholder"
        assert payload["imageUrl"].startswith("data:image/png;base64,")
        assert payload["failedProviders"] == []

    def test_generate_unknown_provider_fails(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)

        result = runner.invoke(app, ["--config", str(config_file), "generate", "animals", "cat", "--provider", "nope"])

        assert result.exit_code == 1
        assert "not registered" in result.output

    def test_gallery_stats_and_cleanup(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        args = ["--config", str(config_file)]
        runner.invoke(app, args + ["generate", "animals", "cat", "--width", "64", "--height", "64"])

        gallery = runner.invoke(app, args + ["gallery", "--theme", "animals"])
        stats = runner.invoke(app, args + ["stats"])
        cleanup = runner.invoke(app, args + ["cleanup", "--max-age-days", "30"])

        assert gallery.exit_code == 0, gallery.output
        assert "Gallery" in gallery.output
        assert stats.exit_code == 0
        assert "animals: 1" in stats.output
        assert "Deleted" in cleanup.output and "0 entries" in cleanup.output

    def test_gallery_rejects_unknown_order(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        result = runner.invoke(app, ["--config", str(config_file), "gallery", "--order-by", "oldest"])
        assert result.exit_code == 2

    def test_providers_table(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        result = runner.invoke(app, ["--config", str(config_file), "providers"])
        assert result.exit_code == 0, result.output
        assert "placeholder" in result.output

    def test_bad_config_exit_code(self, tmp_path: Path) -> None:
        config_file = tmp_path / "coloring.toml"
        config_file.write_text("default_provider = 3\n[bogus]\n")
        result = runner.invoke(app, ["--config", str(config_file), "stats"])
        assert result.exit_code == 2
        assert "Config error" in result.output

    def test_explicit_missing_config_exit_code(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--config", str(tmp_path / "absent.toml"), "stats"])
        assert result.exit_code == 2
        assert "Config error" in result.output


class TestResolveConfig:
    def test_no_config_found_uses_offline_placeholder(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        config = resolve_config(None)
        assert config.default_provider == "placeholder"
        assert config.providers.placeholder is not None

    def test_explicit_missing_path_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            resolve_config(tmp_path / "absent.toml")
