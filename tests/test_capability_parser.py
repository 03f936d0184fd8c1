"""能力定义加载测试。"""

import tempfile
import unittest
from pathlib import Path

from capability_map import (
    ConfigError,
    LoaderReport,
    load_capability_map,
    parse_capability_text,
    parse_capability_yaml,
)
from intent_resolution.demo_data import DEMO_CAPABILITY_TEXT, DEMO_CAPABILITY_YAML
from intent_resolution.models import Command, Gradient, Subject, Switch


class TestParseCapabilityText(unittest.TestCase):
    """测试缩进格式解析。"""

    def test_demo_definition(self):
        """演示定义解析出全部叶子与位置。"""
        capability_map = parse_capability_text(DEMO_CAPABILITY_TEXT)

        self.assertEqual(
            capability_map.locations, ("kitchen", "living room", "bedroom")
        )
        self.assertEqual(len(capability_map.commands), 8)
        self.assertIn(
            Command("kitchen", Gradient(), Subject.WINDOW_BLINDS),
            capability_map.commands,
        )
        self.assertIn(
            Command("living room", Gradient(), Subject.WINDOW_BLINDS),
            capability_map.commands,
        )
        self.assertIn(Command("bedroom", Switch(), Subject.LIGHT), capability_map.commands)

    def test_tabs_and_spaces_equivalent(self):
        """制表符与空格缩进结果一致。"""
        spaces = "commands:\n  hall:\n    switch:\n      - light\n"
        tabs = "commands:\n\thall:\n\t\tswitch:\n\t\t\t- light\n"

        self.assertEqual(parse_capability_text(spaces), parse_capability_text(tabs))
        self.assertEqual(
            parse_capability_text(tabs).commands,
            (Command("hall", Switch(), Subject.LIGHT),),
        )

    def test_nested_root(self):
        """根关键字本身有缩进时，层级按相对根的缩进计算。"""
        text = (
            "home:\n"
            "  commands:\n"
            "    kitchen:\n"
            "      switch:\n"
            "        - light\n"
            "other:\n"
            "  hall:\n"
        )
        report = LoaderReport()
        capability_map = parse_capability_text(text, report=report)

        self.assertEqual(capability_map.locations, ("kitchen",))
        self.assertEqual(
            capability_map.commands,
            (Command("kitchen", Switch(), Subject.LIGHT),),
        )
        self.assertEqual(report.terminated_at, 6)

    def test_nested_root_with_tabs(self):
        text = "home:\n\tcommands:\n\t\tkitchen:\n\t\t\tgradient:\n\t\t\t\tventilator\n"
        capability_map = parse_capability_text(text)
        self.assertEqual(
            capability_map.commands,
            (Command("kitchen", Gradient(), Subject.VENTILATOR),),
        )

    def test_explicit_indent_width(self):
        """显式指定缩进宽度。"""
        text = "commands:\n  hall:\n    gradient:\n      ventilator\n"
        capability_map = parse_capability_text(text, indent_width=2)
        self.assertEqual(
            capability_map.commands,
            (Command("hall", Gradient(), Subject.VENTILATOR),),
        )

    def test_quoted_and_bare_locations(self):
        """带引号与不带引号的位置都接受，列表标记与结尾标点被去掉。"""
        text = (
            "commands:\n"
            "    - \"Living Room\":\n"
            "        switch:\n"
            "            - light,\n"
            "    'hall':\n"
            "        switch:\n"
            "            - light\n"
            "    garage\n"
            "        switch:\n"
            "            - light;\n"
        )
        capability_map = parse_capability_text(text)
        self.assertEqual(capability_map.locations, ("Living Room", "hall", "garage"))

    def test_lines_before_root_ignored(self):
        """根关键字之前的行被忽略。"""
        text = (
            "settings:\n"
            "    kitchen:\n"
            "        switch:\n"
            "            - teapot\n"
            "commands:\n"
            "    hall:\n"
            "        switch:\n"
            "            - light\n"
        )
        capability_map = parse_capability_text(text)
        self.assertEqual(capability_map.locations, ("hall",))

    def test_unknown_tokens_skipped(self):
        """未知动作整块跳过，未知对象单条跳过。"""
        text = (
            "commands:\n"
            "    hall:\n"
            "        toggle:\n"
            "            - light\n"
            "        switch:\n"
            "            - toaster\n"
            "            - light\n"
        )
        report = LoaderReport()
        capability_map = parse_capability_text(text, report=report)

        self.assertEqual(capability_map.commands, (Command("hall", Switch(), Subject.LIGHT),))
        self.assertEqual(report.skipped_actions, ["toggle"])
        self.assertEqual(report.skipped_subjects, ["toaster"])
        self.assertEqual(report.leaves, 1)

    def test_out_of_range_depth_terminates(self):
        """深度不在 1-3 时 commands 段结束。"""
        text = (
            "commands:\n"
            "    hall:\n"
            "        switch:\n"
            "            - light\n"
            "other:\n"
            "    kitchen:\n"
            "        switch:\n"
            "            - teapot\n"
        )
        report = LoaderReport()
        capability_map = parse_capability_text(text, report=report)

        self.assertEqual(capability_map.locations, ("hall",))
        self.assertEqual(report.terminated_at, 5)

    def test_too_deep_terminates(self):
        text = (
            "commands:\n"
            "    hall:\n"
            "        switch:\n"
            "            - light\n"
            "                - extra\n"
            "            - teapot\n"
        )
        capability_map = parse_capability_text(text)
        self.assertEqual(len(capability_map.commands), 1)

    def test_blank_lines_and_comments(self):
        text = (
            "commands:\n"
            "\n"
            "    # 客厅\n"
            "    hall:\n"
            "        switch:\n"
            "\n"
            "            - light\n"
        )
        self.assertEqual(len(parse_capability_text(text).commands), 1)

    def test_degenerate_content(self):
        """退化内容返回空表而不是报错。"""
        self.assertEqual(parse_capability_text("").commands, ())
        self.assertEqual(parse_capability_text("nothing here").commands, ())
        self.assertEqual(parse_capability_text("commands:\n").commands, ())

    def test_idempotent(self):
        """同一文本解析两次结果一致。"""
        first = parse_capability_text(DEMO_CAPABILITY_TEXT)
        second = parse_capability_text(DEMO_CAPABILITY_TEXT)
        self.assertEqual(first, second)
        self.assertEqual(first.locations, second.locations)


class TestParseCapabilityYaml(unittest.TestCase):
    """测试 YAML 格式解析。"""

    def test_same_as_indent_format(self):
        """YAML 与缩进格式得到相同的能力集合。"""
        from_yaml = parse_capability_yaml(DEMO_CAPABILITY_YAML)
        from_text = parse_capability_text(DEMO_CAPABILITY_TEXT)

        self.assertEqual(from_yaml.locations, from_text.locations)
        self.assertEqual(set(from_yaml.commands), set(from_text.commands))

    def test_list_of_mappings(self):
        text = (
            "commands:\n"
            "  - hall:\n"
            "      - switch:\n"
            "          - light\n"
            "      - dim:\n"
            "          - light\n"
        )
        report = LoaderReport()
        capability_map = parse_capability_yaml(text, report=report)
        self.assertEqual(capability_map.commands, (Command("hall", Switch(), Subject.LIGHT),))
        self.assertEqual(report.skipped_actions, ["dim"])

    def test_missing_root(self):
        self.assertEqual(parse_capability_yaml("other: 1\n").commands, ())
        self.assertEqual(parse_capability_yaml("").commands, ())


class TestLoadCapabilityMap(unittest.TestCase):
    """测试从文件加载。"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def test_missing_file_raises(self):
        """文件不存在时抛出 ConfigError。"""
        with self.assertRaises(ConfigError):
            load_capability_map(self.root / "missing.txt")

    def test_load_indent_file(self):
        path = self.root / "capabilities.txt"
        path.write_text(DEMO_CAPABILITY_TEXT, encoding="utf-8")
        capability_map = load_capability_map(path)
        self.assertEqual(len(capability_map.commands), 8)

    def test_load_yaml_file_auto(self):
        """auto 模式下 .yaml 文件按 YAML 解析。"""
        path = self.root / "capabilities.yaml"
        path.write_text(DEMO_CAPABILITY_YAML, encoding="utf-8")
        capability_map = load_capability_map(path)
        self.assertEqual(len(capability_map.commands), 8)

    def test_yaml_suffix_with_tabs_falls_back_to_indent(self):
        """非法 YAML（制表符缩进）在 auto 模式下按缩进格式解析。"""
        path = self.root / "capabilities.yml"
        path.write_text("commands:\n\thall:\n\t\tswitch:\n\t\t\t- light\n", encoding="utf-8")
        capability_map = load_capability_map(path)
        self.assertEqual(capability_map.commands, (Command("hall", Switch(), Subject.LIGHT),))

    def test_yaml_mode_syntax_error_raises(self):
        path = self.root / "broken.yaml"
        path.write_text("commands: [unclosed\n", encoding="utf-8")
        with self.assertRaises(ConfigError):
            load_capability_map(path, fmt="yaml")


if __name__ == "__main__":
    unittest.main()
