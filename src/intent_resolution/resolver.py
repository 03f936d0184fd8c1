"""意图解析。

将打分器对组合词表给出的分数分解为 位置/动作/对象 三个槽位（或识别为提问），
再按置信度阈值与能力表校验，得到意图或失败原因。
"""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Sequence

from capability_map.parser import ConfigError
from capability_map.registry import CapabilityRegistry
from intent_resolution.models import (
    ClassificationLabel,
    Command,
    CommandIntent,
    FailureReason,
    IntentType,
    QuestionIntent,
    Resolution,
    ResolutionResult,
    Switch,
)
from intent_resolution.scorer import Scorer, ScorerError
from intent_resolution.taxonomy import Taxonomy

if TYPE_CHECKING:
    from intent_resolution.worker import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTANCE_THRESHOLD = 0.85
DEFAULT_QUESTION_THRESHOLD = 0.85
_CONTROL_CHARS_RE = re.compile(r"[\r\n\t]")

SLOT_ACTION = "action"
SLOT_SUBJECT = "subject"
SLOT_LOCATION = "location"


@dataclass
class ResolverConfig:
    acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD
    question_threshold: float = DEFAULT_QUESTION_THRESHOLD
    # 每个槽位的最低分，0 表示只看三者最小值
    min_slot_score: float = 0.0
    max_log_chars: int = 400

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        """从环境变量读取阈值，未设置时使用默认值。"""
        return cls(
            acceptance_threshold=_env_float(
                "INTENT_ACCEPTANCE_THRESHOLD", DEFAULT_ACCEPTANCE_THRESHOLD
            ),
            question_threshold=_env_float(
                "INTENT_QUESTION_THRESHOLD", DEFAULT_QUESTION_THRESHOLD
            ),
            min_slot_score=_env_float("INTENT_MIN_SLOT_SCORE", 0.0),
        )


@dataclass
class ResolverMetrics:
    total: int = 0
    commands: int = 0
    questions: int = 0
    failures: dict[FailureReason, int] = field(
        default_factory=lambda: {reason: 0 for reason in FailureReason}
    )

    @property
    def failure_ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return sum(self.failures.values()) / self.total

    def record(self, result: ResolutionResult) -> None:
        self.total += 1
        if result.failure is not None:
            self.failures[result.failure] += 1
        elif isinstance(result.intent, QuestionIntent):
            self.questions += 1
        else:
            self.commands += 1


@dataclass
class _Tracker:
    """单个槽位的当前最高分及其标签下标。"""

    score: float = 0.0
    index: int = 0

    def offer(self, score: float, index: int) -> None:
        # 严格大于：同分时保留先出现的标签
        if score > self.score:
            self.score = score
            self.index = index


def decompose_labels(
    utterance: str,
    labels: Sequence[ClassificationLabel],
    taxonomy: Taxonomy,
    question_threshold: float = DEFAULT_QUESTION_THRESHOLD,
) -> Resolution | None:
    """将打分结果分解为意图。

    一次扫描维护三个槽位的最高分；`question` 标签超过阈值时立即返回提问意图。
    置信度取三个槽位最高分中的最小值。某个槽位没有任何候选时，
    沿用初始值 (0.0, 0)，即取第一个标签。

    Args:
        utterance: 原始语句
        labels: 组合词表上的打分结果
        taxonomy: 标签词表
        question_threshold: 提问判定阈值

    Returns:
        Resolution；labels 为空时返回 None
    """
    if not labels:
        return None

    action = _Tracker()
    subject = _Tracker()
    location = _Tracker()

    for index, label in enumerate(labels):
        is_question = taxonomy.intent_types.lookup(label.text) is IntentType.QUESTION
        if is_question and label.score > question_threshold:
            return Resolution(
                intent=QuestionIntent(text=utterance),
                confidence=label.score,
            )

        if taxonomy.actions.is_label(label.text):
            action.offer(label.score, index)
        elif taxonomy.subjects.is_label(label.text):
            subject.offer(label.score, index)
        elif not taxonomy.is_slot_label(label.text):
            location.offer(label.score, index)

    confidence = min(action.score, subject.score, location.score)
    command = Command(
        location=labels[location.index].text,
        action=taxonomy.decode_action(labels[action.index].text),
        subject=taxonomy.decode_subject(labels[subject.index].text),
    )
    return Resolution(
        intent=CommandIntent(command=command),
        confidence=confidence,
        slot_scores={
            SLOT_ACTION: action.score,
            SLOT_SUBJECT: subject.score,
            SLOT_LOCATION: location.score,
        },
    )


class IntentResolver:
    """按语句调用打分器并给出意图或失败原因。"""

    def __init__(
        self,
        registry: CapabilityRegistry,
        scorer: Scorer,
        taxonomy: Taxonomy | None = None,
        config: ResolverConfig | None = None,
        logger_override: logging.Logger | None = None,
    ) -> None:
        self.registry = registry
        self.scorer = scorer
        self.taxonomy = taxonomy or Taxonomy()
        self.config = config or ResolverConfig()
        self.metrics = ResolverMetrics()
        self._logger = logger_override or logger

    def vocabulary(self) -> tuple[str, ...]:
        """组合词表：意图类型、动作、对象标签与注册表中的位置。"""
        return self.taxonomy.vocabulary(self.registry.locations())

    def resolve(
        self,
        utterance: str,
        cancel: "CancellationToken | None" = None,
    ) -> ResolutionResult | None:
        """解析单条语句。

        打分器调用不可中断，cancel 只在调用前检查；已取消时不调用打分器，
        返回 None，由调用方决定如何回应该语句。
        打分器抛出的异常或不符合约定的输出都转换为 FailureReason.UNKNOWN。
        """
        if cancel is not None and cancel.cancelled:
            return None

        if not utterance or not utterance.strip():
            return self._finish(
                ResolutionResult.failed(
                    utterance, FailureReason.UNRECOGNIZED_INSTRUCTION
                ),
                scored=0,
            )

        try:
            labels = _checked_labels(self.scorer.score(utterance, self.vocabulary()))
        except Exception:
            self._logger.exception(
                "intent_resolver scorer_failed utterance=%s",
                _sanitize_log_value(utterance, self.config.max_log_chars),
            )
            return self._finish(
                ResolutionResult.failed(utterance, FailureReason.UNKNOWN),
                scored=0,
            )

        return self.resolve_labels(utterance, labels)

    def resolve_labels(
        self,
        utterance: str,
        labels: Sequence[ClassificationLabel],
    ) -> ResolutionResult:
        """根据已有打分结果给出意图或失败原因。"""
        resolution = decompose_labels(
            utterance,
            labels,
            self.taxonomy,
            question_threshold=self.config.question_threshold,
        )

        if resolution is None:
            result = ResolutionResult.failed(
                utterance, FailureReason.UNRECOGNIZED_INSTRUCTION
            )
        elif isinstance(resolution.intent, QuestionIntent):
            result = ResolutionResult.success(
                utterance, resolution.intent, resolution.confidence
            )
        elif resolution.confidence < self.config.acceptance_threshold or any(
            score < self.config.min_slot_score
            for score in resolution.slot_scores.values()
        ):
            result = ResolutionResult.failed(
                utterance,
                FailureReason.UNRECOGNIZED_INSTRUCTION,
                resolution.confidence,
            )
        elif not self.registry.supports(resolution.intent.command):
            result = ResolutionResult.failed(
                utterance,
                FailureReason.UNSUPPORTED_INSTRUCTION,
                resolution.confidence,
            )
        else:
            result = ResolutionResult.success(
                utterance, resolution.intent, resolution.confidence
            )

        return self._finish(result, scored=len(labels), resolution=resolution)

    def _finish(
        self,
        result: ResolutionResult,
        *,
        scored: int,
        resolution: Resolution | None = None,
    ) -> ResolutionResult:
        self.metrics.record(result)
        _log_resolution(
            self._logger,
            result,
            resolution,
            self.metrics,
            self.config.max_log_chars,
            scored=scored,
        )
        return result


def _checked_labels(raw: object) -> list[ClassificationLabel]:
    """校验打分器输出，分数截断到 [0, 1]。

    Raises:
        ScorerError: 输出不是标签序列，或标签文本/分数不合法
    """
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        raise ScorerError(f"打分器输出不是标签序列: {type(raw).__name__}")

    labels: list[ClassificationLabel] = []
    for item in raw:
        if not isinstance(item, ClassificationLabel):
            raise ScorerError(f"打分器输出包含非法条目: {item!r}")
        score = item.score
        if (
            not isinstance(item.text, str)
            or isinstance(score, bool)
            or not isinstance(score, (int, float))
            or math.isnan(score)
        ):
            raise ScorerError(f"打分器输出包含非法标签: {item!r}")
        labels.append(
            ClassificationLabel(text=item.text, score=min(1.0, max(0.0, float(score))))
        )
    return labels


def _describe_intent(resolution: Resolution | None) -> str:
    if resolution is None:
        return "-"
    intent = resolution.intent
    if isinstance(intent, QuestionIntent):
        return "question"
    command = intent.command
    action = command.action
    value = action.state.value if isinstance(action, Switch) else action.level.value
    return f"{command.location}/{action.kind}:{value}/{command.subject.value}"


def _log_resolution(
    active_logger: logging.Logger,
    result: ResolutionResult,
    resolution: Resolution | None,
    metrics: ResolverMetrics,
    max_log_chars: int,
    *,
    scored: int,
) -> None:
    """记录解析结果与统计指标。"""
    failure = result.failure.value if result.failure else "-"
    active_logger.info(
        "intent_resolver scored=%d candidate=%s confidence=%.3f failure=%s failure_ratio=%.3f utterance=%s",
        scored,
        _sanitize_log_value(_describe_intent(resolution), max_log_chars),
        result.confidence,
        failure,
        metrics.failure_ratio,
        _sanitize_log_value(result.utterance, max_log_chars),
    )


def _sanitize_log_value(value: str, max_len: int) -> str:
    """清理日志文本中的控制字符并截断长度。"""
    if not isinstance(value, str):
        value = repr(value)
    cleaned = _CONTROL_CHARS_RE.sub(" ", value)
    if len(cleaned) > max_len:
        cleaned = cleaned[: max_len - 3] + "..."
    return cleaned


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"环境变量 {name} 不是合法数字: {raw!r}") from None
