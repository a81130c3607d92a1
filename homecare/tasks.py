import logging

from celery import shared_task

logger = logging.getLogger(__name__)

REQUEST_CREATED = 'request.created'
REQUEST_UPDATED = 'request.updated'
REQUEST_STATUS_CHANGED = 'request.status_changed'
REQUEST_ASSIGNED = 'request.assigned'
REQUEST_DELETED = 'request.deleted'


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,   # 初始重试延迟（秒），指数退避会乘以 2^retry_count
    acks_late=True,           # 任务执行完才 ack，防止 worker 崩溃时任务丢失
    reject_on_worker_lost=True,
)
def dispatch_request_notification(self, request_id: str, event: str, data: dict | None = None):
    """
    异步投递请求事件通知（创建 / 状态变化 / 指派护士 / 删除）。

    重试策略：
      - 最多重试 3 次
      - 指数退避：10s → 20s → 40s
      - 超出次数后记录错误并放弃，请求本身不受影响
    """
    from homecare.models import ServiceRequest
    from homecare.notifications.factory import get_notifier
    from homecare.notifications.types import NotificationMessage

    logger.info("[Celery][notify] %s request_id=%s (attempt %d/%d)",
                event, request_id, self.request.retries + 1, self.max_retries + 1)

    try:
        service_request = ServiceRequest.all_objects.get(id=request_id)
    except ServiceRequest.DoesNotExist:
        logger.error("[Celery] ServiceRequest %s 不存在，跳过", request_id)
        return  # 不重试，直接结束

    message = NotificationMessage(
        event=event,
        request_id=str(service_request.id),
        user_id=service_request.user_id,
        category_id=service_request.category_id,
        status=service_request.status,
        nurse_id=service_request.nurse_id,
        data=data or {},
    )

    try:
        get_notifier().send(message)
        logger.info("[Celery] %s request_id=%s 投递完成", event, request_id)

    except Exception as exc:
        logger.warning(
            "[Celery] %s request_id=%s 投递失败 (attempt %d): %s",
            event, request_id, self.request.retries + 1, str(exc)
        )

        if self.request.retries < self.max_retries:
            # 指数退避：countdown = 10 * 2^retries → 10s, 20s, 40s
            countdown = self.default_retry_delay * (2 ** self.request.retries)
            logger.info(
                "[Celery] 将在 %ds 后重试 (第 %d 次)...",
                countdown, self.request.retries + 1
            )
            raise self.retry(exc=exc, countdown=countdown)

        logger.error("[Celery] %s request_id=%s 已达最大重试次数，放弃投递", event, request_id)
