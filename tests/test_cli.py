"""Tests for the command-line surface, the manager and the run history."""

import pytest
import yaml

from conftest import GOOD_TOOL, version_entry
from formulacli.cli.cli import run_cli
from formulacli.core.errors import DescriptorError, EXIT_INTEGRITY, EXIT_VERIFICATION
from formulacli.core.manager import FormulaManager
from formulacli.utils import cache, history
from formulacli.utils.config import load_config

WRONG_DIGEST = "f" * 64


@pytest.fixture
def formula_path(write_formula, source_tarball, prebuilt_tool):
    return write_formula(
        [
            version_entry(source_tarball, version="1.0.1", strategy="build_from_source"),
            version_entry(prebuilt_tool, version="1.1.0"),
        ]
    )


def cli(config_file, *args):
    return run_cli(["--config", str(config_file), *args])


class TestInstallCommand:
    def test_installs_latest_version(self, config_file, formula_path, install_dir, capsys):
        cli(config_file, "--install", str(formula_path))

        out = capsys.readouterr().out
        assert "installed and tested" in out
        assert "pending → fetched → verified → acquired → installed → tested" in out
        assert (install_dir / "hs").read_bytes() == GOOD_TOOL

    def test_records_installed_version(self, config_file, formula_path):
        cli(config_file, "--install", str(formula_path))

        installed = load_config(str(config_file))["installed"]["heatseeker"]
        assert installed["version"] == "1.1.0"
        assert installed["path"].endswith("/hs")

    def test_bare_name_resolved_in_formula_dir(self, config_file, formula_path, install_dir):
        cli(config_file, "--install", "heatseeker", "--formula-version", "1.0.1")

        assert load_config(str(config_file))["installed"]["heatseeker"]["version"] == "1.0.1"
        assert (install_dir / "hs").is_file()

    def test_install_dir_override(self, config_file, formula_path, tmp_path):
        other = tmp_path / "elsewhere"
        cli(config_file, "--install", str(formula_path), "--install-dir", str(other))
        assert (other / "hs").is_file()

    def test_integrity_failure_exit_code(self, config_file, write_formula, prebuilt_tool, install_dir, capsys):
        path = write_formula([version_entry(prebuilt_tool, digest=WRONG_DIGEST)])

        with pytest.raises(SystemExit) as excinfo:
            cli(config_file, "--install", str(path))

        assert excinfo.value.code == EXIT_INTEGRITY
        out = capsys.readouterr().out
        assert "Failed at stage 'verified' with IntegrityError" in out
        assert "Nothing was installed" in out
        assert not (install_dir / "hs").exists()
        assert "heatseeker" not in load_config(str(config_file))["installed"]

    def test_unknown_formula(self, config_file, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli(config_file, "--install", "does-not-exist")
        assert excinfo.value.code == 2
        assert "not found" in capsys.readouterr().out

    def test_invalid_timeout_option(self, config_file, formula_path):
        with pytest.raises(SystemExit) as excinfo:
            cli(config_file, "--install", str(formula_path), "--build-timeout", "-1")
        assert excinfo.value.code == DescriptorError.exit_code


class TestHistory:
    def test_runs_are_recorded(self, config_file, formula_path, write_formula, prebuilt_tool):
        cli(config_file, "--install", str(formula_path))
        bad = write_formula([version_entry(prebuilt_tool, digest=WRONG_DIGEST)], name="broken")
        with pytest.raises(SystemExit):
            cli(config_file, "--install", str(bad))

        entries = history.get_history()
        assert sorted(e["success"] for e in entries) == [False, True]
        failed = next(e for e in entries if not e["success"])
        assert failed["formulas"] == ["broken"]
        assert failed["details"]["stage"] == "verified"
        assert failed["details"]["error_kind"] == "IntegrityError"

    def test_show_history(self, config_file, formula_path, capsys):
        cli(config_file, "--install", str(formula_path))
        capsys.readouterr()

        run_cli(["--history"])

        out = capsys.readouterr().out
        assert "SUCCESS | INSTALL | heatseeker | Installed version 1.1.0" in out

    def test_clear_history_needs_confirmation(self, config_file, formula_path, monkeypatch):
        cli(config_file, "--install", str(formula_path))

        monkeypatch.setattr("builtins.input", lambda prompt: "n")
        run_cli(["--clear-history"])
        assert len(history.get_history()) == 1

        monkeypatch.setattr("builtins.input", lambda prompt: "y")
        run_cli(["--clear-history"])
        assert history.get_history() == []


class TestTestCommand:
    def test_retest_installed_binary(self, config_file, formula_path, capsys):
        cli(config_file, "--install", str(formula_path))
        capsys.readouterr()

        cli(config_file, "--test", "heatseeker")
        assert "passed its checks" in capsys.readouterr().out

    def test_not_installed(self, config_file, formula_path):
        with pytest.raises(SystemExit) as excinfo:
            cli(config_file, "--test", "heatseeker")
        assert excinfo.value.code == EXIT_VERIFICATION


class TestListing:
    def test_list_shows_installed_state(self, config_file, formula_path, capsys):
        cli(config_file, "--list")
        assert "[NOT INSTALLED]" in capsys.readouterr().out

        cli(config_file, "--install", str(formula_path), "--formula-version", "1.0.1")
        capsys.readouterr()
        cli(config_file, "--list")
        out = capsys.readouterr().out
        assert "[OUTDATED]" in out
        assert "Latest version: 1.1.0" in out

    def test_info_lists_versions(self, config_file, formula_path, capsys):
        cli(config_file, "--info", "heatseeker")
        out = capsys.readouterr().out
        assert "1.0.1" in out and "1.1.0" in out
        assert "build_from_source" in out and "prebuilt_binary" in out


class TestManager:
    def test_missing_config_uses_defaults(self, tmp_path):
        manager = FormulaManager(str(tmp_path / "absent.yaml"))
        assert manager.fetch_timeout == 300
        assert manager.cache_enabled is True
        assert manager.config["installed"] == {}

    def test_invalid_config_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("options: [unclosed")
        with pytest.raises(ValueError):
            FormulaManager(str(path))

    def test_options_from_file(self, config_file, install_dir):
        manager = FormulaManager(str(config_file))
        assert manager.install_dir == str(install_dir)
        assert manager.build_timeout == 60
        assert manager.orchestrator().install_dir == str(install_dir)

    def test_init_writes_default_config(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "formulacli.cli.cli.ensure_user_config_dir", lambda: str(tmp_path / "cfg")
        )
        (tmp_path / "cfg").mkdir()
        run_cli(["--init"])

        written = yaml.safe_load((tmp_path / "cfg" / "formula-cli.yaml").read_text())
        assert written["options"]["build_timeout"] == 1800
        assert written["installed"] == {}


class TestCacheCommands:
    def test_cache_info_and_clear(self, prebuilt_tool, capsys):
        url = "https://example.invalid/hs"
        cache.cache_download(url, str(prebuilt_tool))

        run_cli(["--cache-info"])
        assert "Download cache entries: 1" in capsys.readouterr().out

        run_cli(["--clear-cache"])
        assert "Cache successfully cleared" in capsys.readouterr().out
        assert cache.get_cached_download(url) is None
