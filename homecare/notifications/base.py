"""
BaseNotifier — 所有通知实现的抽象基类。

每个新通知渠道只需：
1. 继承 BaseNotifier
2. 实现 send()
3. 在 factory.py 的 _build_registry 注册一行

tasks.py 完全不知道背后用哪种渠道。
"""

from abc import ABC, abstractmethod

from .types import NotificationMessage


class BaseNotifier(ABC):

    @abstractmethod
    def send(self, message: NotificationMessage) -> None:
        """
        投递一条通知。

        Raises:
            Exception: 投递失败时抛出，由 tasks.py 的重试机制处理
        """
