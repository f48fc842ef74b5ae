"""Tests for layered config precedence (default < pyproject < git < env < cli)."""
from __future__ import annotations

from pathlib import Path
from unittest.mock import patch
import tempfile
import os
import unittest

from autofix import config
from autofix.cli import _build_parser


class ConfigLayeringTests(unittest.TestCase):
    def test_defaults(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({}, [], None)):
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, {}, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertEqual(merged.commit_subject, "Bitrise CI Autofix")
        self.assertIs(merged.include_untracked, True)
        self.assertIs(merged.dry_run, False)
        self.assertIsNone(merged.git_token)
        self.assertEqual(merged._autofix_config_sources["dry_run"], "default")

    def test_pyproject_overrides_defaults(self) -> None:
        parser = _build_parser()
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "pyproject.toml").write_text(
                "[tool.autofix]\ncommit-subject = 'style: autofix'\n"
                "include_untracked = false\n",
                encoding="utf-8",
            )
            args = parser.parse_args([str(root)])
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, {}, clear=True):
                    merged = config.apply_layered_config(args, [str(root)], parser)
        self.assertEqual(merged.commit_subject, "style: autofix")
        self.assertEqual(merged._autofix_config_sources["commit_subject"],
                         "pyproject")
        # the checkout cannot narrow what the CI config gate sees
        self.assertIs(merged.include_untracked, True)
        self.assertEqual(merged._autofix_config_sources["include_untracked"],
                         "default")
        self.assertTrue(any(d["key"] == "include_untracked"
                            for d in merged._autofix_config_diagnostics))

    def test_git_config_cannot_set_include_untracked(self) -> None:
        with patch.object(config, "_git_config",
                          return_value={"autofix.include-untracked": "false",
                                        "autofix.dry-run": "true"}):
            values = config._load_git_overrides("/nonexistent-checkout")
        self.assertEqual(values, {"dry_run": "true"})

    def test_git_overrides_pyproject(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({"commit_subject": "pyproj"}, [], None)):
            with patch("autofix.config._load_git_overrides",
                       return_value={"commit_subject": "from git"}):
                with patch.dict(os.environ, {}, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertEqual(merged.commit_subject, "from git")
        self.assertEqual(merged._autofix_config_sources["commit_subject"], "git")

    def test_env_overrides_git(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({"dry_run": False}, [], None)):
            with patch("autofix.config._load_git_overrides",
                       return_value={"dry_run": "no"}):
                with patch.dict(os.environ, {"dry_run": "yes"}, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertIs(merged.dry_run, True)
        self.assertEqual(merged._autofix_config_sources["dry_run"], "env")

    def test_cli_overrides_env(self) -> None:
        parser = _build_parser()
        argv = ["--commit-subject", "cli subject"]
        args = parser.parse_args(argv)
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({}, [], None)):
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, {"commit_subject": "env"},
                                clear=True):
                    merged = config.apply_layered_config(args, argv, parser)
        self.assertEqual(merged.commit_subject, "cli subject")
        self.assertEqual(merged._autofix_config_sources["commit_subject"], "cli")

    def test_no_untracked_flag_beats_env(self) -> None:
        parser = _build_parser()
        argv = ["--no-untracked"]
        args = parser.parse_args(argv)
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({}, [], None)):
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, {"include_untracked": "true"},
                                clear=True):
                    merged = config.apply_layered_config(args, argv, parser)
        self.assertIs(merged.include_untracked, False)

    def test_token_falls_back_to_http_password(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        env = {"GIT_HTTP_USERNAME": "ci", "GIT_HTTP_PASSWORD": "pw-1"}
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({}, [], None)):
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, env, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertEqual(merged.git_token, "pw-1")
        self.assertEqual(merged.git_username, "ci")

    def test_step_input_wins_over_fallback(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        env = {"git_token": "input", "GIT_HTTP_PASSWORD": "fallback"}
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({}, [], None)):
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, env, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertEqual(merged.git_token, "input")

    def test_empty_input_uses_fallback(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        env = {"git_token": "", "GIT_HTTP_PASSWORD": "fallback"}
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({}, [], None)):
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, env, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertEqual(merged.git_token, "fallback")

    def test_invalid_bool_is_ignored(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        with patch("autofix.config._load_pyproject_overrides",
                   return_value=({}, [], None)):
            with patch("autofix.config._load_git_overrides",
                       return_value={"verbose": "true"}):
                with patch.dict(os.environ, {"verbose": "maybe"}, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertIs(merged.verbose, True)
        self.assertEqual(merged._autofix_config_sources["verbose"], "git")
        diagnostics = merged._autofix_config_diagnostics
        self.assertTrue(any(d["source"] == "env" and d["key"] == "verbose"
                            for d in diagnostics))

    def test_token_in_pyproject_is_not_read(self) -> None:
        parser = _build_parser()
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "pyproject.toml").write_text(
                "[tool.autofix]\ngit-token = 'leaked'\ndry-run = 'maybe'\n",
                encoding="utf-8",
            )
            args = parser.parse_args([str(root)])
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, {}, clear=True):
                    merged = config.apply_layered_config(args, [str(root)], parser)
        self.assertIsNone(merged.git_token)
        self.assertIs(merged.dry_run, False)
        diags = merged._autofix_config_diagnostics
        self.assertTrue(any(d["key"] == "git-token" for d in diags))
        self.assertTrue(any(d["key"] == "dry_run" for d in diags))
        self.assertNotIn("leaked", repr(diags))

    def test_pyproject_parse_error_is_reported(self) -> None:
        parser = _build_parser()
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "pyproject.toml").write_text(
                "[tool.autofix\ndry-run = true\n",
                encoding="utf-8",
            )
            args = parser.parse_args([str(root)])
            with patch("autofix.config._load_git_overrides", return_value={}):
                with patch.dict(os.environ, {}, clear=True):
                    merged = config.apply_layered_config(args, [], parser)
        self.assertTrue(any(d["level"] == "error" and d["source"] == "pyproject"
                            for d in merged._autofix_config_diagnostics))


if __name__ == "__main__":
    unittest.main()
