"""运行配置。

从环境变量读取能力定义路径、打分器类型与阈值，并组装解析器。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from capability_map import CapabilityFormat, CapabilityRegistry, ConfigError
from intent_resolution.resolver import IntentResolver, ResolverConfig
from intent_resolution.scorer import DashScopeScorer, EmbeddingScorer, FakeScorer, Scorer

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITY_PATH = "config/capabilities.txt"
VALID_FORMATS = {"auto", "indent", "yaml"}
VALID_SCORERS = {"fake", "dashscope", "embedding"}


@dataclass
class EngineSettings:
    capability_path: str = DEFAULT_CAPABILITY_PATH
    capability_format: CapabilityFormat = "auto"
    indent_width: int | None = None
    scorer: str = "dashscope"
    dashscope_model: str = "qwen-flash"
    embedding_model: str = "text-embedding-v4"
    resolver: ResolverConfig = field(default_factory=ResolverConfig)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """从环境变量构造配置。

        Raises:
            ConfigError: 取值不合法
        """
        capability_format = os.getenv("CAPABILITY_MAP_FORMAT", "auto").strip().lower()
        if capability_format not in VALID_FORMATS:
            raise ConfigError(f"CAPABILITY_MAP_FORMAT 不支持: {capability_format!r}")

        scorer = os.getenv("INTENT_SCORER", "dashscope").strip().lower()
        if scorer not in VALID_SCORERS:
            raise ConfigError(f"INTENT_SCORER 不支持: {scorer!r}")

        return cls(
            capability_path=os.getenv("CAPABILITY_MAP_PATH", DEFAULT_CAPABILITY_PATH),
            capability_format=capability_format,  # type: ignore[arg-type]
            indent_width=_env_positive_int("CAPABILITY_INDENT_WIDTH"),
            scorer=scorer,
            dashscope_model=os.getenv("DASHSCOPE_MODEL", "qwen-flash"),
            embedding_model=os.getenv("DASHSCOPE_EMBEDDING_MODEL", "text-embedding-v4"),
            resolver=ResolverConfig.from_env(),
        )


def build_scorer(settings: EngineSettings) -> Scorer:
    """按配置创建打分器。"""
    if settings.scorer == "fake":
        return FakeScorer()
    if settings.scorer == "embedding":
        return EmbeddingScorer(model=settings.embedding_model)
    return DashScopeScorer(model=settings.dashscope_model)


def build_resolver(
    settings: EngineSettings | None = None,
    scorer: Scorer | None = None,
) -> IntentResolver:
    """加载能力表并组装解析器。

    能力定义无法读取时 ConfigError 直接向上抛出，启动失败。
    """
    settings = settings or EngineSettings.from_env()
    registry = CapabilityRegistry.from_path(
        settings.capability_path,
        fmt=settings.capability_format,
        indent_width=settings.indent_width,
    )
    logger.info(
        "engine_ready path=%s scorer=%s locations=%s acceptance_threshold=%.2f",
        settings.capability_path,
        settings.scorer if scorer is None else type(scorer).__name__,
        ",".join(registry.locations()),
        settings.resolver.acceptance_threshold,
    )
    return IntentResolver(
        registry,
        scorer or build_scorer(settings),
        config=settings.resolver,
    )


def _env_positive_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise ConfigError(f"环境变量 {name} 必须是正整数: {raw!r}")
    return int(raw)
