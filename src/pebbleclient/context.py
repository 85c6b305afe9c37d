"""
调用上下文模块

提供可取消、可设置截止时间的调用上下文，用于控制单次调用（包括重试等待）的生命周期。
上下文可以派生子上下文：父上下文取消时，所有子上下文一并取消。

使用示例:
    >>> ctx = RequestContext.background().with_timeout(5)
    >>> client = client.with_options(Options(ctx=ctx))
    >>> client.get("/users")      # 5 秒后仍未完成的重试会停止
    >>> ctx.cancel()              # 也可以在其他线程中主动取消
"""

from __future__ import annotations

import threading
import time

from pebbleclient.exceptions import APIClientCancelledError, APIClientTimeoutError


class RequestContext:
    """
    可取消的调用上下文

    参数:
        deadline: 截止时间（time.monotonic() 时间戳），None 表示不限制
        parent: 父上下文，父上下文结束时本上下文也随之结束
    """

    def __init__(self, deadline: float | None = None, parent: RequestContext | None = None):
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[RequestContext] = []
        self._cancelled = False
        if parent is not None:
            parent._attach(self)

    @classmethod
    def background(cls) -> RequestContext:
        """返回一个永不结束的根上下文"""
        return cls()

    def with_timeout(self, seconds: float) -> RequestContext:
        """派生一个在 seconds 秒后到期的子上下文"""
        return RequestContext(deadline=time.monotonic() + seconds, parent=self)

    def with_cancel(self) -> RequestContext:
        """派生一个可独立取消的子上下文"""
        return RequestContext(parent=self)

    def _attach(self, child: RequestContext) -> None:
        with self._lock:
            if not self._cancelled:
                self._children.append(child)
                return
        child.cancel()

    def cancel(self) -> None:
        """取消上下文及其所有子上下文"""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            children, self._children = self._children, []
        self._event.set()
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def remaining(self) -> float | None:
        """距离截止时间的剩余秒数，未设置截止时间时返回 None"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def done(self) -> bool:
        """上下文是否已结束（被取消或已到期）"""
        if self._cancelled:
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def wait(self, seconds: float) -> bool:
        """
        阻塞等待最多 seconds 秒，上下文结束时立即返回

        返回:
            上下文是否已结束
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
        return self.done()

    def error(self) -> Exception | None:
        """返回上下文结束的原因，未结束时返回 None"""
        if self._cancelled:
            return APIClientCancelledError("Context cancelled")
        if self.done():
            return APIClientTimeoutError("Context deadline exceeded")
        return None
