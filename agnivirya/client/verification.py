"""
Máquina de estados de verificación de una orden.

    pending -> verifying -> success | failed | timeout

Mientras está en `verifying` se hace una pasada de verificación cada
`interval` segundos; cada pasada prueba los IDs candidatos en orden y se
detiene en el primero que Cashfree reporta como pagado. Si ninguno se confirma
antes de `timeout` segundos el loop termina en `timeout`.

`retry()` cancela el loop activo, reinicia el contador de intentos y hace una
sola pasada inmediata: termina en `success` o `failed`, sin reanudar el poll.
"""
import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..utils import now_utc

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0
DEFAULT_TIMEOUT = 60.0


class VerificationState(str, Enum):
    PENDING = "pending"
    VERIFYING = "verifying"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


TERMINAL_STATES = (VerificationState.SUCCESS, VerificationState.FAILED, VerificationState.TIMEOUT)


class PaymentVerificationTask:
    """
    Poll cancelable contra el endpoint de verificación.

    Args:
        verify: corrutina order_id -> bool. No debe lanzar; un error equivale a "no pagado".
        order_ids: IDs candidatos en orden de prioridad (orderId, luego cfOrderId).
        interval: segundos entre pasadas.
        timeout: techo total del poll en segundos.
        on_success: callback síncrono con el ID confirmado.
    """

    def __init__(
        self,
        verify: Callable[[str], Awaitable[bool]],
        order_ids: List[str],
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        on_success: Optional[Callable[[str], None]] = None,
    ):
        self._verify = verify
        self.order_ids = [oid for oid in order_ids if oid]
        self.interval = interval
        self.timeout = timeout
        self._on_success = on_success

        self.state = VerificationState.PENDING
        self.attempts = 0
        self.last_attempt_at: Optional[datetime] = None
        self.verified_order_id: Optional[str] = None

        self._task: Optional[asyncio.Task] = None
        self._in_flight = False
        self._result: Optional[asyncio.Future] = None

    @property
    def result(self) -> asyncio.Future:
        """Future con el estado final. Se renueva en cada start()/retry()."""
        if self._result is None:
            self._result = asyncio.get_running_loop().create_future()
        return self._result

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _new_result(self) -> None:
        if self._result is None or self._result.done():
            self._result = asyncio.get_running_loop().create_future()

    def _finish(self, state: VerificationState) -> None:
        self.state = state
        if self._result is not None and not self._result.done():
            self._result.set_result(state)

    def _succeed(self, order_id: str) -> None:
        self.verified_order_id = order_id
        logger.info(f"✅ Pago confirmado para {order_id} tras {self.attempts} intento(s)")
        if self._on_success is not None:
            try:
                self._on_success(order_id)
            except Exception as e:
                # El pago ya está confirmado; un fallo al persistirlo no cambia el resultado
                logger.error(f"❌ Error guardando el pago de {order_id}: {e}", exc_info=True)
        self._finish(VerificationState.SUCCESS)

    def start(self) -> bool:
        """
        Arranca el poll. No hace nada (devuelve False) si ya hay un loop activo
        o una verificación en curso.
        """
        if self.running or self._in_flight:
            logger.debug("Verificación ya en curso, start() ignorado")
            return False

        self._new_result()
        if not self.order_ids:
            logger.warning("⚠️ No hay orden guardada para verificar")
            self._finish(VerificationState.FAILED)
            return False

        self.state = VerificationState.VERIFYING
        self._task = asyncio.get_running_loop().create_task(self._poll_loop())
        return True

    def cancel(self) -> None:
        """Detiene el poll (teardown). El estado actual se conserva."""
        self._stop_loop()
        if self._result is not None and not self._result.done():
            self._result.cancel()

    def _stop_loop(self) -> Optional[asyncio.Task]:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            return task
        return None

    async def retry(self) -> VerificationState:
        """Reintento manual: una sola pasada inmediata, termina en success o failed."""
        if self._in_flight and not self.running:
            logger.debug("Reintento ignorado: ya hay una verificación en curso")
            return self.state

        stopped = self._stop_loop()
        if stopped is not None:
            await asyncio.wait([stopped])

        self._new_result()
        self.attempts = 0
        self.state = VerificationState.VERIFYING
        paid_id = await self._verify_once()
        if paid_id is not None:
            self._succeed(paid_id)
        else:
            logger.info("❌ Reintento manual sin confirmación de pago")
            self._finish(VerificationState.FAILED)
        return self.state

    async def _verify_once(self) -> Optional[str]:
        self._in_flight = True
        self.attempts += 1
        self.last_attempt_at = now_utc()
        try:
            for order_id in self.order_ids:
                try:
                    paid = await self._verify(order_id)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"⚠️ Error verificando {order_id}: {e}")
                    paid = False
                if paid:
                    return order_id
            return None
        finally:
            self._in_flight = False

    async def _poll_loop(self) -> None:
        try:
            await self._run_polls()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._task = None
            logger.error(f"❌ Error inesperado en la verificación: {e}", exc_info=True)
            self._finish(VerificationState.FAILED)

    async def _run_polls(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while True:
            paid_id = await self._verify_once()
            if paid_id is not None:
                self._task = None
                self._succeed(paid_id)
                return

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.interval, remaining))
            if loop.time() >= deadline:
                break

        self._task = None
        logger.info(f"⏱️ Verificación agotada tras {self.attempts} intento(s) en {self.timeout}s")
        self._finish(VerificationState.TIMEOUT)
