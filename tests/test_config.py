import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolhost.authorizer import DEFAULT_ALLOWED_COMMANDS
from toolhost.config import ServerConfig, load_config


class TestConfig(unittest.TestCase):
    def test_missing_file_gives_defaults(self) -> None:
        with TemporaryDirectory() as tmp:
            cfg = load_config(Path(tmp) / "config.yml", environ={})
        self.assertEqual(cfg, ServerConfig())
        self.assertEqual(cfg.allowed_commands, DEFAULT_ALLOWED_COMMANDS)
        self.assertEqual(cfg.command_timeout_ms, 10_000)
        self.assertEqual(cfg.command_max_output_bytes, 1024 * 1024)

    def test_file_values_applied(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yml"
            path.write_text(
                "allowed_commands: [uptime, 'git status']\n"
                "command_timeout_ms: 2500\n"
                "block_metacharacters: false\n"
                "log_level: debug\n",
                encoding="utf-8",
            )
            cfg = load_config(path, environ={})
        self.assertEqual(cfg.allowed_commands, ("uptime", "git status"))
        self.assertEqual(cfg.command_timeout_ms, 2500)
        self.assertFalse(cfg.block_metacharacters)
        self.assertEqual(cfg.log_level, "DEBUG")

    def test_invalid_values_fall_back(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yml"
            path.write_text(
                "allowed_commands: ls\n"
                "command_timeout_ms: -5\n"
                "command_max_output_bytes: true\n"
                "geocoding_url: ''\n"
                "log_level: loud\n"
                "unknown_key: 1\n",
                encoding="utf-8",
            )
            cfg = load_config(path, environ={})
        self.assertEqual(cfg, ServerConfig())

    def test_non_mapping_file_ignored(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yml"
            path.write_text("- just\n- a list\n", encoding="utf-8")
            self.assertEqual(load_config(path, environ={}), ServerConfig())

    def test_environment_overrides_endpoints(self) -> None:
        with TemporaryDirectory() as tmp:
            cfg = load_config(
                Path(tmp) / "config.yml",
                environ={
                    "GENERATE_IMAGE_API_URL": "http://gpu:9000/gen",
                    "EDIT_IMAGE_API_URL": "http://gpu:9000/edit",
                    "TOOLHOST_GEOCODING_URL": "http://geo.local/search",
                },
            )
        self.assertEqual(cfg.image_generate_url, "http://gpu:9000/gen")
        self.assertEqual(cfg.image_edit_url, "http://gpu:9000/edit")
        self.assertEqual(cfg.geocoding_url, "http://geo.local/search")
        self.assertEqual(cfg.forecast_url, ServerConfig().forecast_url)
