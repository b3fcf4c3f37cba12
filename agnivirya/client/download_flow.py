"""
Flujo de la página de descarga: decide si el pago ya está confirmado y, si no,
verifica la orden guardada con PaymentVerificationTask.
"""
import logging
from typing import Awaitable, Callable, Mapping, Optional

from .storage import LocalOrderStorage
from .verification import (
    DEFAULT_INTERVAL,
    DEFAULT_TIMEOUT,
    PaymentVerificationTask,
    VerificationState,
)

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = ("SUCCESS", "success")


class DownloadFlow:
    def __init__(
        self,
        storage: LocalOrderStorage,
        verify: Callable[[str], Awaitable[bool]],
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.storage = storage
        self._verify = verify
        self.interval = interval
        self.timeout = timeout
        self.task: Optional[PaymentVerificationTask] = None
        self._state = VerificationState.PENDING

    @property
    def state(self) -> VerificationState:
        if self.task is not None:
            return self.task.state
        return self._state

    @property
    def can_download(self) -> bool:
        return self.state == VerificationState.SUCCESS

    def _on_verified(self, order_id: str) -> None:
        self.storage.mark_paid()

    async def run(self, query_params: Optional[Mapping[str, str]] = None) -> VerificationState:
        """
        - payment_status=SUCCESS en la URL de retorno: success directo, sin poll.
        - Sin orden guardada: failed.
        - En otro caso: poll hasta success o timeout.
        """
        query_params = query_params or {}
        if query_params.get("payment_status") in SUCCESS_STATUSES:
            logger.info("✅ Cashfree redirigió con payment_status=SUCCESS")
            self.storage.mark_paid()
            self._state = VerificationState.SUCCESS
            return self._state

        order = self.storage.load_order()
        order_ids = order.candidate_ids() if order is not None else []
        if not order_ids:
            logger.warning("⚠️ No hay orden guardada: no se puede verificar el pago")
            self._state = VerificationState.FAILED
            return self._state

        self.task = PaymentVerificationTask(
            self._verify,
            order_ids,
            interval=self.interval,
            timeout=self.timeout,
            on_success=self._on_verified,
        )
        self.task.start()
        return await self.task.result

    async def retry(self) -> VerificationState:
        if self.task is None:
            return await self.run()
        return await self.task.retry()

    def cancel(self) -> None:
        if self.task is not None:
            self.task.cancel()
