"""
通知层的标准消息结构。

所有 Notifier 的 send() 都接收这个对象。
业务层（tasks.py）只负责构造它，不知道背后是写日志还是打 webhook。
"""

from dataclasses import asdict, dataclass, field


@dataclass
class NotificationMessage:
    event: str                 # request.created / request.status_changed / request.assigned ...
    request_id: str
    user_id: int
    category_id: int
    status: str
    nurse_id: int | None = None
    data: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return asdict(self)
