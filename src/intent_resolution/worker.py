"""单线程意图解析 worker。

从上游队列按顺序读取语句，每条语句完整解析后再处理下一条，
并向下游队列写入恰好一条 ResolutionResult，顺序与输入一致。
"""

from __future__ import annotations

import logging
import queue
import threading

from intent_resolution.models import FailureReason, ResolutionResult
from intent_resolution.resolver import IntentResolver

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.2


class CancellationToken:
    """共享的取消信号。

    只在两条语句之间检查；正在进行的打分器调用不会被中断，
    因此停止延迟最长为一次打分调用的耗时。
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class ResolverWorker:
    """在独立线程中顺序消费语句。

    上游队列中的 None 表示输入结束。
    """

    def __init__(
        self,
        resolver: IntentResolver,
        inbound: "queue.Queue[str | None]",
        outbound: "queue.Queue[ResolutionResult]",
        cancel_token: CancellationToken | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """初始化。

        Args:
            resolver: 意图解析器
            inbound: 上游语句队列（无界 FIFO）
            outbound: 下游结果队列（无界 FIFO）
            cancel_token: 取消信号，None 时自动创建
            poll_interval: 等待上游输入时检查取消信号的间隔（秒）
        """
        self.resolver = resolver
        self.inbound = inbound
        self.outbound = outbound
        self.cancel_token = cancel_token or CancellationToken()
        self.poll_interval = poll_interval
        self._thread: threading.Thread | None = None
        self.processed = 0

    def start(self) -> None:
        """启动后台线程。"""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self.run, name="intent-resolver", daemon=True
        )
        self._thread.start()
        logger.info("resolver_worker started")

    def stop(self, timeout: float | None = None) -> None:
        """发出取消信号并等待线程退出。"""
        self.cancel_token.cancel()
        self.join(timeout)

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        """主循环，可直接在当前线程调用。"""
        while not self.cancel_token.cancelled:
            try:
                utterance = self.inbound.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            if utterance is None:
                logger.info("resolver_worker inbound_closed processed=%d", self.processed)
                break

            self.process_one(utterance)

        logger.info("resolver_worker stopped processed=%d", self.processed)

    def process_one(self, utterance: str) -> ResolutionResult:
        """解析一条语句并写入下游队列。

        已取出的语句总会得到一条结果：解析器异常，或取出后才收到取消信号，
        都记为 FailureReason.UNKNOWN。
        """
        try:
            result = self.resolver.resolve(utterance, cancel=self.cancel_token)
        except Exception:
            logger.exception("resolver_worker resolve_failed processed=%d", self.processed)
            result = ResolutionResult.failed(utterance, FailureReason.UNKNOWN)

        if result is None:
            logger.info("resolver_worker cancelled_before_scoring processed=%d", self.processed)
            result = ResolutionResult.failed(utterance, FailureReason.UNKNOWN)

        self.outbound.put(result)
        self.processed += 1
        return result
