# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI smoke tests.

CLI tests verify that commands execute, exit codes are correct and help
text exists. subprocess runs the actual entrypoint the way a user would,
which catches broken imports that unit tests miss. Commands that would
touch the network run in --dry-run mode or are driven in-process.
"""

import argparse
import os
import subprocess
import sys
from pathlib import Path
from unittest import mock

import pytest

from ndengine.cli import commands
from ndengine.cli.exit_codes import CONFIG_ERROR, RUNTIME_ERROR, SUCCESS, USER_ERROR
from ndengine.config.schema import EngineConfig
from ndengine.native.engines import PYTORCH
from ndengine.native.exceptions import DownloadFailedError, InvalidVersionFormatError
from ndengine.runtime.environment import map_library_name


def _run_cli(*args: str, env_cache: Path) -> subprocess.CompletedProcess[str]:
    """Run `ndengine` with the given arguments and capture output."""
    env = dict(os.environ)
    env["ENGINE_CACHE_DIR"] = str(env_cache)
    return subprocess.run(
        [sys.executable, "-m", "ndengine.cli.main", *args],
        capture_output=True,
        text=True,
        timeout=120,
        env=env,
    )


def _args(**overrides: object) -> argparse.Namespace:
    values: dict[str, object] = {"config": None, "log_level": "INFO", "engine": None, "dry_run": False}
    values.update(overrides)
    return argparse.Namespace(**values)


class TestHelpTexts:
    @pytest.mark.parametrize("subcommand", ["info", "resolve", "fetch", "load"])
    def test_subcommand_help_exits_zero(self, subcommand: str, tmp_path: Path) -> None:
        result = _run_cli(subcommand, "--help", env_cache=tmp_path)
        assert result.returncode == 0
        assert "usage" in result.stdout.lower()

    def test_root_help_exits_with_user_error(self, tmp_path: Path) -> None:
        result = _run_cli(env_cache=tmp_path)
        assert result.returncode == USER_ERROR


class TestSubcommandExecution:
    def test_info_runs_without_config(self, tmp_path: Path) -> None:
        result = _run_cli("info", env_cache=tmp_path)
        assert result.returncode == SUCCESS
        assert "Detected platform" in result.stdout

    def test_resolve_reports_cache_entry(self, tmp_path: Path) -> None:
        result = _run_cli("resolve", "--engine", "onnxruntime", env_cache=tmp_path)
        assert result.returncode == SUCCESS
        assert str(tmp_path / "onnxruntime") in result.stdout

    def test_fetch_dry_run_touches_nothing(self, tmp_path: Path) -> None:
        cache = tmp_path / "cache"
        result = _run_cli("fetch", "--dry-run", env_cache=cache)
        assert result.returncode == SUCCESS
        assert not (cache / "pytorch").exists()

    def test_load_dry_run(self, tmp_path: Path) -> None:
        result = _run_cli("load", "--dry-run", env_cache=tmp_path)
        assert result.returncode == SUCCESS


class TestErrors:
    def test_nonexistent_config_returns_config_error(self, tmp_path: Path) -> None:
        result = _run_cli("info", "--config", "/nonexistent/path.yaml", env_cache=tmp_path)
        assert result.returncode == CONFIG_ERROR

    def test_valid_config_is_accepted(self, tmp_config_file: Path, tmp_path: Path) -> None:
        result = _run_cli("resolve", "--config", str(tmp_config_file), env_cache=tmp_path)
        assert result.returncode == SUCCESS

    def test_unknown_engine_is_user_error(self, tmp_path: Path) -> None:
        result = _run_cli("resolve", "--engine", "tensorflow", env_cache=tmp_path)
        assert result.returncode == USER_ERROR

    def test_invalid_version_is_user_error(self) -> None:
        with mock.patch.object(
            commands, "find_native_library", side_effect=InvalidVersionFormatError("Unexpected version: latest")
        ):
            assert commands.handle_fetch(_args()) == USER_ERROR

    def test_download_failure_is_runtime_error(self) -> None:
        with mock.patch.object(commands, "load_library", side_effect=DownloadFailedError("offline")):
            assert commands.handle_load(_args()) == RUNTIME_ERROR


class TestPrebuiltLibrary:
    @pytest.fixture()
    def prebuilt_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
        directory = tmp_path / "prebuilt"
        directory.mkdir()
        (directory / map_library_name(PYTORCH.native_lib)).write_bytes(b"")
        monkeypatch.setenv("PYTORCH_LIBRARY_PATH", str(directory))
        return directory

    def test_resolve_reports_prebuilt_location(self, prebuilt_dir: Path, tmp_path: Path) -> None:
        config = EngineConfig(cache_dir=str(tmp_path / "cache"))

        _, info, prebuilt = commands._resolve(PYTORCH, config)

        assert prebuilt
        assert info.directory == prebuilt_dir.absolute()

    def test_without_prebuilt_resolves_to_cache(self, tmp_path: Path) -> None:
        config = EngineConfig(cache_dir=str(tmp_path / "cache"))

        _, info, prebuilt = commands._resolve(PYTORCH, config)

        assert not prebuilt
        assert info.directory.parent == tmp_path / "cache" / "pytorch"

    def test_load_dry_run_never_loads(self, prebuilt_dir: Path) -> None:
        with mock.patch.object(commands, "load_library") as load:
            assert commands.handle_load(_args(dry_run=True)) == SUCCESS
        load.assert_not_called()
