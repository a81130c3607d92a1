"""
工厂函数：根据 settings.NOTIFICATION_BACKEND 返回对应的 Notifier 实例。

新增通知渠道只需：
  1. 在 services.py 新建 XxxNotifier(BaseNotifier) 类
  2. 在此处 _build_registry 加一行
  不需要修改 tasks.py 或任何业务代码。
"""

from django.conf import settings

from .base import BaseNotifier


def _build_registry() -> dict[str, type[BaseNotifier]]:
    # 延迟导入，避免在 Django 启动前触发 requests import
    from .services import LogNotifier, WebhookNotifier

    return {
        "log":     LogNotifier,
        "webhook": WebhookNotifier,
    }


def get_notifier() -> BaseNotifier:
    """
    从 settings.NOTIFICATION_BACKEND 读取渠道（默认 "log"），返回 Notifier 实例。

    Raises:
        ValueError: NOTIFICATION_BACKEND 未知
    """
    backend = getattr(settings, "NOTIFICATION_BACKEND", "log")
    registry = _build_registry()
    notifier_cls = registry.get(backend)

    if notifier_cls is None:
        raise ValueError(
            f"Unknown NOTIFICATION_BACKEND: {backend!r}. "
            f"Known backends: {list(registry.keys())}"
        )

    return notifier_cls()
