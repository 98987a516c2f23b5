from concurrent.futures import ThreadPoolExecutor
from typing import Callable
import logging
import threading

from src.config import config

logger = logging.getLogger(__name__)


class MailDispatcher:
    """
    Gửi email trên thread pool cố định để request HTTP không phải chờ SMTP.

    Hàng đợi có giới hạn: tối đa pool_size task đang chạy + queue_capacity task
    đang chờ. Khi đầy, task mới bị từ chối và ghi log.
    """

    def __init__(self, pool_size: int, queue_capacity: int):
        self._executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="mail")
        self._slots = threading.BoundedSemaphore(pool_size + queue_capacity)

    def submit(self, task: Callable, *args, **kwargs) -> bool:
        """Đưa task vào hàng đợi; trả về False nếu bị từ chối"""
        if not self._slots.acquire(blocking=False):
            logger.error("Mail queue is full, rejecting task %s", getattr(task, "__name__", task))
            return False
        try:
            self._executor.submit(self._run, task, *args, **kwargs)
        except RuntimeError:
            # executor đã shutdown
            self._slots.release()
            logger.error("Mail dispatcher is shut down, rejecting task %s", getattr(task, "__name__", task))
            return False
        return True

    def _run(self, task: Callable, *args, **kwargs):
        try:
            result = task(*args, **kwargs)
            if isinstance(result, dict) and result.get("status") == "error":
                logger.error("Mail task %s failed: %s", task.__name__, result.get("message"))
            return result
        except Exception:
            logger.exception("Mail task %s raised", getattr(task, "__name__", task))
        finally:
            self._slots.release()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


mail_dispatcher = MailDispatcher(config.MAIL_POOL_SIZE, config.MAIL_QUEUE_CAPACITY)
