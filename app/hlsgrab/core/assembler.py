"""
流组装模块
并发拉取片段，按计划顺序写入输出（扇出拉取、有序汇入）
"""

import logging
import os
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import BinaryIO, Callable, Deque, Optional, Tuple

from .config import DownloadConfig
from .errors import CancelledError
from .fetcher import HeadersLike, SegmentFetcher
from .models import FetchPlan, FetchTask

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# 等待队首片段时检查取消标志的间隔
_POLL_INTERVAL = 0.1


class _StopSignal:
    """
    组装内部的停止信号

    调用方的取消事件与内部停止事件任一被设置即视为停止；
    出错时只设置内部事件，不改动调用方的取消事件。
    """

    def __init__(self, outer: Optional[threading.Event] = None):
        self.outer = outer
        self.inner = threading.Event()

    def set(self):
        self.inner.set()

    def is_set(self) -> bool:
        return self.inner.is_set() or (self.outer is not None and self.outer.is_set())

    def wait(self, timeout: Optional[float] = None) -> bool:
        if self.outer is None:
            return self.inner.wait(timeout)
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.is_set():
            remaining = _POLL_INTERVAL if deadline is None else min(_POLL_INTERVAL, deadline - time.monotonic())
            if remaining <= 0:
                break
            self.inner.wait(remaining)
        return self.is_set()


@dataclass
class AssemblyResult:
    """组装结果"""
    bytes_written: int
    segments: int
    key_requests: int = 0


class StreamAssembler:
    """
    流组装器

    - 初始化片段（若有）最先写入
    - 工作线程池并发拉取，最多 prefetch_window 个片段领先于写入位置
    - 只有调用线程写 sink，严格按计划顺序
    - 任一片段失败立即中止整个组装并抛出原始异常
    """

    def __init__(self, fetcher: SegmentFetcher, config: Optional[DownloadConfig] = None):
        self.fetcher = fetcher
        self.config = config or fetcher.config

    def assemble(self, plan: FetchPlan, sink: BinaryIO, headers: HeadersLike = None,
                 progress_callback: Optional[ProgressCallback] = None,
                 cancel_event: Optional[threading.Event] = None) -> AssemblyResult:
        """
        执行拉取计划并写入 sink

        Args:
            plan: 拉取计划
            sink: 只追加写入的二进制流
            headers: 请求上下文
            progress_callback: 每写完一个片段调用 (已完成数, 总数)
            cancel_event: 取消事件

        Raises:
            CancelledError: 被取消
            以及任一片段的原始错误
        """
        cancel_event = _StopSignal(cancel_event)
        key_cache = self.fetcher.new_key_cache(headers, cancel_event)
        total = len(plan.tasks)
        written = 0

        self._check_cancelled(cancel_event)
        if plan.init_segment is not None:
            init_bytes = self.fetcher.fetch_init_segment(plan.init_segment, headers, cancel_event=cancel_event)
            sink.write(init_bytes)
            written += len(init_bytes)
            logger.debug(f"写入初始化片段: {len(init_bytes)} bytes")

        def _fetch(task: FetchTask) -> bytes:
            self._check_cancelled(cancel_event)
            return self.fetcher.fetch_and_decrypt(task, headers, key_cache, cancel_event=cancel_event)

        window = self.config.effective_prefetch_window
        pending: Deque[Tuple[int, Future]] = deque()
        next_index = 0
        executor = ThreadPoolExecutor(max_workers=self.config.concurrency, thread_name_prefix='hls-fetch')
        try:
            while next_index < total or pending:
                # 补满预取窗口
                while next_index < total and len(pending) < window:
                    self._check_cancelled(cancel_event)
                    pending.append((next_index, executor.submit(_fetch, plan.tasks[next_index])))
                    next_index += 1

                index, _ = pending[0]
                data = self._wait_for_head(pending, cancel_event)
                pending.popleft()

                sink.write(data)
                written += len(data)
                if progress_callback:
                    progress_callback(index + 1, total)
        except BaseException:
            # 停止发出新请求，不等待仍在进行中的请求
            cancel_event.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        logger.info(f"组装完成: {total} 个片段, {written} bytes, 密钥请求 {key_cache.fetch_count} 次")
        return AssemblyResult(bytes_written=written, segments=total, key_requests=key_cache.fetch_count)

    def assemble_to_file(self, plan: FetchPlan, output_path: str, headers: HeadersLike = None,
                         progress_callback: Optional[ProgressCallback] = None,
                         cancel_event: Optional[threading.Event] = None) -> AssemblyResult:
        """
        组装到文件

        先写入 <output>.part，成功后原子重命名；失败或取消时
        .part 文件按 keep_partial_files 保留或删除，不会留下看似完整的输出。
        """
        parent = os.path.dirname(os.path.abspath(output_path))
        os.makedirs(parent, exist_ok=True)
        part_path = output_path + '.part'

        try:
            with open(part_path, 'wb') as f:
                result = self.assemble(plan, f, headers, progress_callback, cancel_event)
                f.flush()
                os.fsync(f.fileno())
        except BaseException as e:
            if self.config.keep_partial_files:
                logger.warning(f"组装失败，保留不完整文件: {part_path} ({e})")
            elif os.path.exists(part_path):
                os.remove(part_path)
            raise

        os.replace(part_path, output_path)
        return result

    @staticmethod
    def _check_cancelled(cancel_event: _StopSignal):
        if cancel_event.is_set():
            raise CancelledError("下载已取消")

    def _wait_for_head(self, pending: Deque[Tuple[int, Future]], cancel_event: _StopSignal) -> bytes:
        """
        等待队首片段

        窗口内任一片段先失败也立即抛出，不必等队首完成；期间响应取消。
        """
        head = pending[0][1]
        while True:
            for _, future in pending:
                if future.done() and future.exception() is not None:
                    raise future.exception()
            if head.done():
                return head.result()
            running = [f for _, f in pending if not f.done()]
            wait(running, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
            self._check_cancelled(cancel_event)
