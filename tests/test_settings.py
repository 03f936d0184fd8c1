"""运行配置测试。"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from capability_map import ConfigError
from intent_resolution.demo_data import DEMO_CAPABILITY_YAML, demo_scorer
from intent_resolution.scorer import FakeScorer
from intent_resolution.settings import EngineSettings, build_resolver, build_scorer


class TestEngineSettings(unittest.TestCase):
    """测试环境变量读取。"""

    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = EngineSettings.from_env()
        self.assertEqual(settings.capability_path, "config/capabilities.txt")
        self.assertEqual(settings.capability_format, "auto")
        self.assertIsNone(settings.indent_width)
        self.assertEqual(settings.scorer, "dashscope")

    def test_overrides(self):
        env = {
            "CAPABILITY_MAP_PATH": "/etc/home/caps.yaml",
            "CAPABILITY_MAP_FORMAT": "YAML",
            "CAPABILITY_INDENT_WIDTH": "2",
            "INTENT_SCORER": "fake",
            "INTENT_ACCEPTANCE_THRESHOLD": "0.9",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = EngineSettings.from_env()
        self.assertEqual(settings.capability_path, "/etc/home/caps.yaml")
        self.assertEqual(settings.capability_format, "yaml")
        self.assertEqual(settings.indent_width, 2)
        self.assertIsInstance(build_scorer(settings), FakeScorer)
        self.assertEqual(settings.resolver.acceptance_threshold, 0.9)

    def test_invalid_values(self):
        for env in (
            {"CAPABILITY_MAP_FORMAT": "toml"},
            {"INTENT_SCORER": "bert"},
            {"CAPABILITY_INDENT_WIDTH": "0"},
            {"CAPABILITY_INDENT_WIDTH": "two"},
        ):
            with self.subTest(env=env):
                with mock.patch.dict(os.environ, env, clear=True):
                    with self.assertRaises(ConfigError):
                        EngineSettings.from_env()


class TestBuildResolver(unittest.TestCase):
    """测试解析器组装。"""

    def test_build_from_yaml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "capabilities.yaml"
            path.write_text(DEMO_CAPABILITY_YAML, encoding="utf-8")
            settings = EngineSettings(capability_path=str(path), scorer="fake")
            resolver = build_resolver(settings, scorer=demo_scorer())

        self.assertEqual(
            resolver.registry.locations(), ("kitchen", "living room", "bedroom")
        )
        self.assertTrue(resolver.resolve("turn on the kitchen light").ok)

    def test_missing_definition_aborts(self):
        settings = EngineSettings(capability_path="/nonexistent/caps.txt", scorer="fake")
        with self.assertRaises(ConfigError):
            build_resolver(settings)


if __name__ == "__main__":
    unittest.main()
