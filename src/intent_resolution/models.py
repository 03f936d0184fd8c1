"""核心数据模型定义。

包含动作、对象、命令、能力表、分类标签、意图与失败原因等数据结构。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

# 位置标识，按配置或分类器输出原样保存
Location = str

ActionKind = Literal["switch", "gradient"]


class SwitchState(Enum):
    """开关状态。"""

    ON = "on"
    OFF = "off"


class GradientLevel(Enum):
    """渐变档位。"""

    MIN = "min"
    MAX = "max"
    MORE = "more"
    LESS = "less"


@dataclass(frozen=True)
class Switch:
    """开关类动作。"""

    state: SwitchState = SwitchState.OFF

    @property
    def kind(self) -> ActionKind:
        return "switch"

    def same_kind(self, other: "Action") -> bool:
        """只比较动作类型，忽略状态。"""
        return self.kind == other.kind


@dataclass(frozen=True)
class Gradient:
    """渐变类动作。"""

    level: GradientLevel = GradientLevel.MIN

    @property
    def kind(self) -> ActionKind:
        return "gradient"

    def same_kind(self, other: "Action") -> bool:
        """只比较动作类型，忽略档位。"""
        return self.kind == other.kind


Action = Union[Switch, Gradient]


class Subject(Enum):
    """可控制的对象。"""

    LIGHT = "light"
    TEAPOT = "teapot"
    WINDOW_BLINDS = "window blinds"
    TEMPERATURE = "temperature"
    VENTILATOR = "ventilator"


class IntentType(Enum):
    """意图类型。"""

    COMMAND = "command"
    QUESTION = "question"


@dataclass(frozen=True)
class Command:
    """位置、动作、对象三元组。

    既可表示能力表中的一条能力，也可表示由分类结果构造的候选命令。
    """

    location: Location
    action: Action
    subject: Subject

    def matches(self, other: "Command") -> bool:
        """位置与对象精确相等，动作只比较类型。"""
        return (
            self.location == other.location
            and self.subject == other.subject
            and self.action.same_kind(other.action)
        )


@dataclass(frozen=True)
class CapabilityMap:
    """能力表，加载后只读。"""

    commands: tuple[Command, ...] = ()
    locations: tuple[Location, ...] = ()

    @classmethod
    def from_commands(cls, commands: list[Command]) -> "CapabilityMap":
        """由命令列表构造，位置按首次出现顺序去重。"""
        locations: list[Location] = []
        seen: set[Location] = set()
        for command in commands:
            if command.location in seen:
                continue
            seen.add(command.location)
            locations.append(command.location)
        return cls(commands=tuple(commands), locations=tuple(locations))

    def __len__(self) -> int:
        return len(self.commands)


@dataclass(frozen=True)
class ClassificationLabel:
    """分类器对单个标签的打分。"""

    text: str
    score: float = 0.0


@dataclass(frozen=True)
class CommandIntent:
    """命令意图。"""

    command: Command


@dataclass(frozen=True)
class QuestionIntent:
    """提问意图，保留原始语句。"""

    text: str


Intent = Union[CommandIntent, QuestionIntent]


class FailureReason(Enum):
    """分类失败原因。"""

    UNKNOWN = "unknown"
    UNRECOGNIZED_INSTRUCTION = "unrecognized_instruction"
    UNSUPPORTED_INSTRUCTION = "unsupported_instruction"


@dataclass
class Resolution:
    """槽位分解结果。"""

    intent: Intent
    confidence: float
    slot_scores: dict[str, float] = field(default_factory=dict)


@dataclass
class ResolutionResult:
    """单条语句的最终结果，成功时带意图，失败时带原因。"""

    utterance: str
    intent: Intent | None = None
    confidence: float = 0.0
    failure: FailureReason | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.intent is not None

    @classmethod
    def success(
        cls, utterance: str, intent: Intent, confidence: float
    ) -> "ResolutionResult":
        return cls(utterance=utterance, intent=intent, confidence=confidence)

    @classmethod
    def failed(
        cls, utterance: str, reason: FailureReason, confidence: float = 0.0
    ) -> "ResolutionResult":
        return cls(utterance=utterance, confidence=confidence, failure=reason)
