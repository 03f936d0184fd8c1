"""Capability definition loader.

Parses the human-authored capability definition into a ``CapabilityMap``.
The definition nests four levels under the ``commands`` root keyword:
location, action keyword (``switch`` / ``gradient``) and subject keyword.

Two encodings share these level semantics:

* indentation text, where the depth of each line relative to the root decides
  its level (tabs or spaces);
* YAML, where the same levels are nested mappings / lists.

Content problems never abort the load: unknown action or subject tokens are
skipped and logged. Only an unreadable source raises ``ConfigError``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Literal

import yaml

from intent_resolution.models import (
    ActionKind,
    CapabilityMap,
    Command,
    Gradient,
    Location,
    Subject,
    Switch,
)
from intent_resolution.taxonomy import SubjectTaxonomy, action_keyword

logger = logging.getLogger(__name__)

ROOT_KEYWORD = "commands"
DEFAULT_INDENT_WIDTH = 4
YAML_SUFFIXES = {".yaml", ".yml"}

LEVEL_LOCATION = 1
LEVEL_ACTION = 2
LEVEL_SUBJECT = 3

CapabilityFormat = Literal["auto", "indent", "yaml"]

_LIST_MARKER_RE = re.compile(r"^[-*]\s*")
_TRAILING_PUNCT_RE = re.compile(r"[\s:,;]+$")
_SUBJECTS = SubjectTaxonomy()


class ConfigError(Exception):
    """能力定义或运行配置不可用。"""


@dataclass
class LoaderReport:
    """加载过程统计，用于诊断被跳过的内容。"""

    leaves: int = 0
    skipped_actions: list[str] = field(default_factory=list)
    skipped_subjects: list[str] = field(default_factory=list)
    terminated_at: int | None = None


def parse_capability_text(
    text: str,
    *,
    indent_width: int | None = None,
    report: LoaderReport | None = None,
) -> CapabilityMap:
    """解析缩进格式的能力定义。

    Args:
        text: 定义文本
        indent_width: 每级缩进的空格数，None 时根据首个缩进行自动识别
        report: 可选统计对象，解析时原地填充

    Returns:
        CapabilityMap，结构退化时返回空表或部分表
    """
    report = report if report is not None else LoaderReport()
    commands: list[Command] = []

    lines = text.splitlines()
    root_index = _find_root(lines)
    if root_index is None:
        logger.info("capability_map root_missing keyword=%s", ROOT_KEYWORD)
        return CapabilityMap()

    body = lines[root_index + 1 :]
    root_indent = _leading_indent(lines[root_index])
    width = (
        indent_width
        or _detect_indent_width(body, root_indent)
        or DEFAULT_INDENT_WIDTH
    )

    location: Location | None = None
    kind: ActionKind | None = None

    for offset, line in enumerate(body, start=root_index + 2):
        if _is_blank_or_comment(line):
            continue

        depth = _relative_depth(line, root_indent, width)
        token = _clean_token(line)

        if depth == LEVEL_LOCATION:
            location = token or None
            kind = None
        elif depth == LEVEL_ACTION:
            if location is None:
                continue
            kind = action_keyword(token)
            if kind is None:
                logger.warning(
                    "capability_map skip_action line=%d token=%s", offset, token
                )
                report.skipped_actions.append(token)
        elif depth == LEVEL_SUBJECT:
            if location is None or kind is None:
                continue
            subject = _SUBJECTS.lookup(token)
            if subject is None:
                logger.warning(
                    "capability_map skip_subject line=%d token=%s", offset, token
                )
                report.skipped_subjects.append(token)
                continue
            commands.append(_build_command(location, kind, subject))
        else:
            # 超出 location/action/subject 三级，commands 段结束
            report.terminated_at = offset
            break

    report.leaves = len(commands)
    return CapabilityMap.from_commands(commands)


def parse_capability_yaml(
    text: str,
    *,
    report: LoaderReport | None = None,
) -> CapabilityMap:
    """解析 YAML 格式的能力定义。

    支持映射嵌套或单键映射列表两种写法，层级语义与缩进格式一致。
    YAML 语法错误会抛出 ``yaml.YAMLError``。
    """
    report = report if report is not None else LoaderReport()
    document = yaml.safe_load(text)
    commands: list[Command] = []

    root = document.get(ROOT_KEYWORD) if isinstance(document, dict) else None
    for location_key, actions in _iter_entries(root):
        location = _clean_token(str(location_key))
        if not location:
            continue
        for action_key, subjects in _iter_entries(actions):
            token = _clean_token(str(action_key))
            kind = action_keyword(token)
            if kind is None:
                logger.warning("capability_map skip_action token=%s", token)
                report.skipped_actions.append(token)
                continue
            for subject_key, _ in _iter_entries(subjects):
                subject_token = _clean_token(str(subject_key))
                subject = _SUBJECTS.lookup(subject_token)
                if subject is None:
                    logger.warning(
                        "capability_map skip_subject token=%s", subject_token
                    )
                    report.skipped_subjects.append(subject_token)
                    continue
                commands.append(_build_command(location, kind, subject))

    report.leaves = len(commands)
    return CapabilityMap.from_commands(commands)


def load_capability_map(
    path: str | Path,
    *,
    fmt: CapabilityFormat = "auto",
    indent_width: int | None = None,
    report: LoaderReport | None = None,
) -> CapabilityMap:
    """从文件加载能力表。

    Args:
        path: 定义文件路径
        fmt: auto / indent / yaml；auto 时 .yaml/.yml 且含 commands 根的文档按 YAML 解析
        indent_width: 缩进宽度，仅缩进格式使用
        report: 可选统计对象

    Raises:
        ConfigError: 文件无法读取，或 yaml 模式下语法错误
    """
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"无法读取能力定义: {source}") from exc

    report = report if report is not None else LoaderReport()

    if fmt == "yaml":
        try:
            capability_map = parse_capability_yaml(text, report=report)
        except yaml.YAMLError as exc:
            raise ConfigError(f"能力定义 YAML 语法错误: {source}") from exc
    elif fmt == "auto" and _looks_like_yaml_document(source, text):
        capability_map = parse_capability_yaml(text, report=report)
    else:
        capability_map = parse_capability_text(
            text, indent_width=indent_width, report=report
        )

    logger.info(
        "capability_map loaded path=%s commands=%d locations=%d skipped_actions=%d skipped_subjects=%d",
        source,
        len(capability_map.commands),
        len(capability_map.locations),
        len(report.skipped_actions),
        len(report.skipped_subjects),
    )
    return capability_map


def _build_command(location: Location, kind: ActionKind, subject: Subject) -> Command:
    """构造能力条目，动作只保留类型。"""
    action = Switch() if kind == "switch" else Gradient()
    return Command(location=location, action=action, subject=subject)


def _looks_like_yaml_document(source: Path, text: str) -> bool:
    if source.suffix.lower() not in YAML_SUFFIXES:
        return False
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError:
        return False
    return isinstance(document, dict) and ROOT_KEYWORD in document


def _iter_entries(node: Any) -> Iterator[tuple[Any, Any]]:
    """将 YAML 节点统一展开为 (key, children) 序列。"""
    if isinstance(node, dict):
        yield from node.items()
    elif isinstance(node, list):
        for item in node:
            if isinstance(item, dict):
                yield from item.items()
            elif item is not None:
                yield item, None
    elif isinstance(node, (str, int, float)):
        yield node, None


def _find_root(lines: list[str]) -> int | None:
    for index, line in enumerate(lines):
        if _clean_token(line) == ROOT_KEYWORD:
            return index
    return None


def _detect_indent_width(
    lines: list[str], root_indent: tuple[int, int]
) -> int | None:
    """取根之后首个非空行相对根多出的空格数作为每级宽度。

    首个子行用制表符缩进或没有多出空格时返回 None。
    """
    root_tabs, root_spaces = root_indent
    for line in lines:
        if _is_blank_or_comment(line):
            continue
        tabs, spaces = _leading_indent(line)
        step = spaces - root_spaces
        if tabs != root_tabs or step <= 0:
            return None
        return step
    return None


def _leading_indent(line: str) -> tuple[int, int]:
    """统计行首的制表符与空格数。"""
    tabs = 0
    spaces = 0
    for ch in line:
        if ch == "\t":
            tabs += 1
        elif ch == " ":
            spaces += 1
        else:
            break
    return tabs, spaces


def _relative_depth(line: str, root_indent: tuple[int, int], width: int) -> int:
    """相对根行的层级：制表符计一级，空格按 width 折算。"""
    tabs, spaces = _leading_indent(line)
    root_tabs, root_spaces = root_indent
    return (tabs - root_tabs) + (spaces - root_spaces) // width


def _clean_token(line: str) -> str:
    """去掉列表标记、结尾标点与引号。"""
    token = line.strip()
    token = _LIST_MARKER_RE.sub("", token)
    token = _TRAILING_PUNCT_RE.sub("", token)
    if len(token) >= 2 and token[0] == token[-1] and token[0] in {'"', "'"}:
        token = token[1:-1].strip()
    return token


def _is_blank_or_comment(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("#")
