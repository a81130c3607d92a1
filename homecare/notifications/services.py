"""
具体通知实现。

新增通知渠道：在此文件添加一个类，然后在 factory.py 注册即可。

已注册渠道：
  log     — LogNotifier      (只写日志，开发 / 测试默认)
  webhook — WebhookNotifier  (POST JSON 到 NOTIFICATION_WEBHOOK_URL)
"""

import logging

import requests
from django.conf import settings

from .base import BaseNotifier
from .types import NotificationMessage

logger = logging.getLogger(__name__)


# ── LogNotifier ────────────────────────────────────────────────────────────

class LogNotifier(BaseNotifier):

    def send(self, message: NotificationMessage) -> None:
        logger.info(
            "[notify] %s request=%s user=%s status=%s",
            message.event, message.request_id, message.user_id, message.status,
        )


# ── WebhookNotifier ────────────────────────────────────────────────────────
#
# 环境变量：NOTIFICATION_WEBHOOK_URL, NOTIFICATION_TIMEOUT（秒，默认 5）
# 非 2xx 响应视为失败，交给 Celery 重试。

class WebhookNotifier(BaseNotifier):

    def __init__(self, url=None, timeout=None):
        self.url = url or getattr(settings, "NOTIFICATION_WEBHOOK_URL", "")
        self.timeout = timeout or getattr(settings, "NOTIFICATION_TIMEOUT", 5)

    def send(self, message: NotificationMessage) -> None:
        if not self.url:
            raise ValueError("NOTIFICATION_WEBHOOK_URL is not set")

        response = requests.post(self.url, json=message.as_dict(), timeout=self.timeout)
        response.raise_for_status()
