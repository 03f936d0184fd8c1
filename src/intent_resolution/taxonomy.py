"""Label taxonomy helpers.

Each field (action, subject, intent type) exposes its label vocabulary and a
total decode function: unknown labels fall back to a documented default and
never raise.
"""

from __future__ import annotations

from typing import Generic, Iterable, Protocol, TypeVar, runtime_checkable

from intent_resolution.models import (
    Action,
    ActionKind,
    Gradient,
    GradientLevel,
    IntentType,
    Location,
    Subject,
    Switch,
    SwitchState,
)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

ACTION_LABELS: dict[str, Action] = {
    "turn on": Switch(SwitchState.ON),
    "turn off": Switch(SwitchState.OFF),
    "switch": Switch(SwitchState.OFF),
    "increase": Gradient(GradientLevel.MORE),
    "decrease": Gradient(GradientLevel.LESS),
    "close": Gradient(GradientLevel.MIN),
    "open": Gradient(GradientLevel.MAX),
}
DEFAULT_ACTION: Action = Switch(SwitchState.OFF)

SUBJECT_LABELS: dict[str, Subject] = {subject.value: subject for subject in Subject}
DEFAULT_SUBJECT = Subject.LIGHT

INTENT_TYPE_LABELS: dict[str, IntentType] = {
    intent_type.value: intent_type for intent_type in IntentType
}
DEFAULT_INTENT_TYPE = IntentType.COMMAND

# 配置文件中的动作关键字
ACTION_KEYWORDS: dict[str, ActionKind] = {
    "switch": "switch",
    "gradient": "gradient",
}


@runtime_checkable
class LabelTaxonomy(Protocol[T_co]):
    """单个字段的标签词表协议。"""

    def labels(self) -> tuple[str, ...]:
        """返回该字段的全部标签。"""
        ...

    def is_label(self, label: str) -> bool:
        """判断文本是否为该字段的已知标签。"""
        ...

    def decode(self, label: str) -> T_co:
        """标签解码，未知标签返回默认值。"""
        ...


class _MappedTaxonomy(Generic[T]):
    """基于固定映射表的标签词表。"""

    def __init__(self, mapping: dict[str, T], default: T):
        self._mapping = dict(mapping)
        self._default = default
        self._lookup: dict[str, T] = {}
        for label, value in self._mapping.items():
            key = _compact_key(label)
            if key and key not in self._lookup:
                self._lookup[key] = value

    def labels(self) -> tuple[str, ...]:
        return tuple(self._mapping)

    def is_label(self, label: str) -> bool:
        """与 decode 相同的宽松匹配，"Light" 与 "light" 视为同一标签。"""
        return self.lookup(label) is not None

    def lookup(self, label: str | None) -> T | None:
        """宽松查找：忽略大小写、空白与分隔符，找不到返回 None。"""
        if isinstance(label, str) and label in self._mapping:
            return self._mapping[label]
        key = _compact_key(label)
        if not key:
            return None
        return self._lookup.get(key)

    def decode(self, label: str) -> T:
        value = self.lookup(label)
        if value is None:
            return self._default
        return value

    @property
    def default(self) -> T:
        return self._default


class ActionTaxonomy(_MappedTaxonomy[Action]):
    """动作标签：开关与渐变，默认关闭。"""

    def __init__(self):
        super().__init__(ACTION_LABELS, DEFAULT_ACTION)


class SubjectTaxonomy(_MappedTaxonomy[Subject]):
    """对象标签：小写对象名，默认灯。"""

    def __init__(self):
        super().__init__(SUBJECT_LABELS, DEFAULT_SUBJECT)


class IntentTypeTaxonomy(_MappedTaxonomy[IntentType]):
    """意图类型标签：command / question。"""

    def __init__(self):
        super().__init__(INTENT_TYPE_LABELS, DEFAULT_INTENT_TYPE)


class Taxonomy:
    """三个字段词表的组合。"""

    def __init__(
        self,
        actions: ActionTaxonomy | None = None,
        subjects: SubjectTaxonomy | None = None,
        intent_types: IntentTypeTaxonomy | None = None,
    ):
        self.actions = actions or ActionTaxonomy()
        self.subjects = subjects or SubjectTaxonomy()
        self.intent_types = intent_types or IntentTypeTaxonomy()

    def vocabulary(self, locations: Iterable[Location] = ()) -> tuple[str, ...]:
        """组合词表：意图类型 + 动作 + 对象 + 位置，保序去重。"""
        vocabulary: list[str] = []
        seen: set[str] = set()
        for label in (
            *self.intent_types.labels(),
            *self.actions.labels(),
            *self.subjects.labels(),
            *locations,
        ):
            if label in seen:
                continue
            seen.add(label)
            vocabulary.append(label)
        return tuple(vocabulary)

    def decode_action(self, label: str) -> Action:
        return self.actions.decode(label)

    def decode_subject(self, label: str) -> Subject:
        return self.subjects.decode(label)

    def is_slot_label(self, label: str) -> bool:
        """是否为意图类型、动作或对象标签（即非位置标签）。"""
        return (
            self.intent_types.is_label(label)
            or self.actions.is_label(label)
            or self.subjects.is_label(label)
        )


def action_keyword(token: str | None) -> ActionKind | None:
    """解析配置中的动作关键字，未知返回 None。"""
    key = _compact_key(token)
    if not key:
        return None
    return ACTION_KEYWORDS.get(key)


def _compact_key(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    if not stripped:
        return None
    return "".join(ch for ch in stripped.lower() if ch.isalnum())
