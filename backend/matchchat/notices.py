"""User-visible notices (toast/banner messages).

Boundary failures, socket connection errors and "room does not exist" are
reported here instead of raised. The UI drains the board and shows each
notice once.
"""
import logging
import time
import uuid
from collections import deque
from enum import Enum
from typing import Deque, List

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notice(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    level: NoticeLevel = NoticeLevel.ERROR
    text: str
    ts: float = Field(default_factory=time.time)


class NoticeBoard:
    """Bounded FIFO of pending notices; the oldest are dropped when full."""

    def __init__(self, max_items: int = 50) -> None:
        self._items: Deque[Notice] = deque(maxlen=max_items)

    def post(self, text: str, level: NoticeLevel = NoticeLevel.ERROR) -> Notice:
        notice = Notice(level=level, text=text)
        self._items.append(notice)
        logger.debug("Notice posted (%s): %s", level.value, text)
        return notice

    def drain(self) -> List[Notice]:
        items = list(self._items)
        self._items.clear()
        return items

    @property
    def items(self) -> List[Notice]:
        return list(self._items)
