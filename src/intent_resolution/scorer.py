"""多标签打分器。

打分器对一条语句和一组候选标签给出彼此独立的相关度分数（不归一化）。
这里只提供调用外部模型/服务的适配器，不实现模型本身。
"""

import json
import logging
import os
import re
from http import HTTPStatus
from typing import Any, Protocol, Sequence

import numpy as np
from numpy.typing import NDArray

from intent_resolution.models import ClassificationLabel

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"{.*}", re.DOTALL)

DEFAULT_SCORER_PROMPT = """You are a multi-label text classifier for a smart home voice assistant.

Score how relevant every candidate label is to the user's utterance. Scores are independent
numbers between 0 and 1; they do not need to sum to 1.

Return only one JSON object mapping each candidate label (verbatim) to its score, for example:
{"command": 0.93, "question": 0.04, "turn on": 0.91, "light": 0.88, "kitchen": 0.90}

Do not output Markdown or any text other than the JSON object.
"""


class ScorerError(RuntimeError):
    """打分器调用失败。"""


class Scorer(Protocol):
    """打分器协议。"""

    def score(self, text: str, labels: Sequence[str]) -> list[ClassificationLabel]:
        """对每个标签打分，返回顺序与 labels 一致。"""
        ...


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class FakeScorer(Scorer):
    """用于测试和离线 demo 的假打分器。"""

    def __init__(
        self,
        preset_scores: dict[str, dict[str, float]] | None = None,
        default_score: float = 0.0,
    ):
        """初始化。

        Args:
            preset_scores: 预设分数，key 是输入文本，value 是 {标签: 分数}
            default_score: 未预设标签的分数
        """
        self._presets = preset_scores or {}
        self._default = default_score
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    def score(self, text: str, labels: Sequence[str]) -> list[ClassificationLabel]:
        """返回预设分数，缺失的标签使用默认分数。"""
        self.calls.append((text, tuple(labels)))
        preset = self._presets.get(text, {})
        return [
            ClassificationLabel(text=label, score=_clamp(preset.get(label, self._default)))
            for label in labels
        ]


class DashScopeScorer(Scorer):
    """基于 dashscope 对话模型的零样本多标签打分器。

    让 qwen 模型直接输出 {标签: 分数} 的 JSON 对象。
    """

    def __init__(
        self,
        model: str = "qwen-flash",
        api_key: str | None = None,
        generation_client: Any | None = None,
        system_prompt: str | None = None,
    ):
        """初始化。

        Args:
            model: dashscope 模型名称
            api_key: API Key，未提供时从环境变量 `DASHSCOPE_API_KEY` 读取
            generation_client: 可注入的 Generation 客户端，便于测试
            system_prompt: 可选自定义 system prompt
        """
        self.model = model
        self._system_prompt = system_prompt or DEFAULT_SCORER_PROMPT

        if generation_client is not None:
            self._generation = generation_client
            return

        try:
            import dashscope
            from dashscope import Generation
        except ImportError as exc:  # pragma: no cover - 依赖缺失时提示
            raise ImportError("需要安装 dashscope 才能使用 DashScopeScorer") from exc

        api_key = api_key or os.getenv("DASHSCOPE_API_KEY")
        if api_key:
            dashscope.api_key = api_key

        self._generation = Generation

    def score(self, text: str, labels: Sequence[str]) -> list[ClassificationLabel]:
        """调用 dashscope 为每个标签打分。"""
        user_text = "\n".join(
            [
                f"Utterance: {text}",
                "Candidate labels:",
                json.dumps(list(labels), ensure_ascii=False),
            ]
        )
        messages = [
            {"role": "system", "content": self._system_prompt},
            {"role": "user", "content": user_text},
        ]

        response = self._generation.call(
            model=self.model,
            messages=messages,  # type: ignore
            result_format="message",
        )
        scores = self._parse_scores(self._extract_content(response))

        return [
            ClassificationLabel(text=label, score=_coerce_score(scores.get(label)))
            for label in labels
        ]

    def _extract_content(self, response: Any) -> str:
        """从 dashscope 响应中提取文本内容。

        dashscope 响应结构：response.output.choices[0].message.content
        """
        if response.status_code != HTTPStatus.OK:
            raise ScorerError(
                f"dashscope 调用失败: code={response.code}, message={response.message}"
            )
        return response.output.choices[0].message.content

    def _parse_scores(self, content: str) -> dict[str, Any]:
        """解析 JSON 对象，允许前后夹带多余文本。"""
        if not content:
            raise ScorerError("dashscope 返回内容为空")

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            match = _JSON_OBJECT_RE.search(content)
            if not match:
                raise ScorerError("dashscope 返回内容不是 JSON") from None
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError as exc:
                raise ScorerError("dashscope 返回内容不是 JSON") from exc

        if not isinstance(parsed, dict):
            raise ScorerError("dashscope 返回的 JSON 不是对象")
        return parsed


class EmbeddingScorer(Scorer):
    """基于 DashScope embedding 余弦相似度的打分器。

    语句与每个标签分别编码，余弦相似度截断到 [0, 1] 作为分数。
    标签向量按标签文本缓存。
    """

    def __init__(
        self,
        model: str = "text-embedding-v4",
        api_key: str | None = None,
        embedding_client: Any | None = None,
    ):
        """初始化。

        Args:
            model: 模型名称，默认 text-embedding-v4
            api_key: API Key，未提供时从 `DASHSCOPE_API_KEY` 读取
            embedding_client: 可注入的 embedding 客户端，便于测试
        """
        self.model = model
        self._label_cache: dict[str, NDArray[np.float32]] = {}

        if embedding_client is not None:
            self._embedding = embedding_client
            return

        try:
            import dashscope
        except ImportError as exc:
            raise ImportError("需要安装 dashscope 才能使用 EmbeddingScorer") from exc

        api_key = api_key or os.getenv("DASHSCOPE_API_KEY")
        if api_key:
            dashscope.api_key = api_key

        self._embedding = dashscope.TextEmbedding

    def score(self, text: str, labels: Sequence[str]) -> list[ClassificationLabel]:
        """计算语句与每个标签的余弦相似度。"""
        if not labels:
            return []

        missing = [label for label in dict.fromkeys(labels) if label not in self._label_cache]
        if missing:
            vectors = self.encode(missing)
            for label, vector in zip(missing, vectors):
                self._label_cache[label] = vector

        query = self.encode([text])[0]
        query_norm = query / (np.linalg.norm(query) + 1e-8)
        matrix = np.vstack([self._label_cache[label] for label in labels])
        matrix_norm = matrix / (np.linalg.norm(matrix, axis=1, keepdims=True) + 1e-8)
        similarities = np.clip(matrix_norm @ query_norm, 0.0, 1.0)

        return [
            ClassificationLabel(text=label, score=float(score))
            for label, score in zip(labels, similarities)
        ]

    def encode(self, texts: list[str], batch_size: int = 10) -> NDArray[np.float32]:
        """编码文本列表为向量数组。

        Args:
            texts: 文本列表
            batch_size: 每批处理的文本数量，dashscope 限制最大 10

        Returns:
            向量数组，shape=(len(texts), dim)
        """
        all_vectors = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            response = self._embedding.call(model=self.model, input=batch)

            status = getattr(response, "status_code", None)
            if status is not None and status != HTTPStatus.OK:
                message = getattr(response, "message", "")
                raise ScorerError(f"dashscope 调用失败: {status} {message}")

            output = getattr(response, "output", None) or {}
            embeddings = output.get("embeddings") if hasattr(output, "get") else None
            if not embeddings:
                raise ScorerError(
                    f"dashscope 未返回 embeddings 结果 (batch {i // batch_size})"
                )

            for item in embeddings:
                vector = item.get("embedding") if isinstance(item, dict) else None
                if vector is not None:
                    all_vectors.append(np.asarray(vector, dtype=np.float32))

        if len(all_vectors) != len(texts):
            raise ScorerError("dashscope 返回的 embedding 数量不匹配")

        return np.vstack(all_vectors)


def _coerce_score(value: object) -> float:
    """将模型给出的分数转换为 [0, 1] 浮点数，无法识别时为 0。"""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return _clamp(float(value))
    if isinstance(value, str):
        try:
            return _clamp(float(value.strip()))
        except ValueError:
            return 0.0
    return 0.0
