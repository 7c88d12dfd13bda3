import asyncio

from labinterop.commons.logger import logger
from labinterop.helpers.file_transport import FileSender
from labinterop.helpers.router import FlowRouter
from labinterop.helpers.tcp_transport import TcpSender


class OrdersService:
    def __init__(self, router: FlowRouter, transport_cfg: dict, paths: dict, retry: dict):
        self.router = router
        self.transport_cfg = transport_cfg
        self.paths = paths
        self.retry = retry

    async def send_order(self, payload) -> str:
        hl7 = self.router.render_order(payload)
        self.router.archive_raw("sent", hl7, tag="order")

        orders = self.transport_cfg["orders"]
        if orders.type == "file":
            pattern = orders.file.get("filename_pattern", "{timestamp}_{uuid}.hl7")
            ctrl = self.router.engine.parse(hl7).message_control_id
            p = FileSender(self.paths["outbox"], pattern).send(hl7, message_type="ORM", control_id=ctrl)
            logger.info(f"Orden escrita en {p}")
            return hl7

        tcp = orders.tcp
        sender = TcpSender(
            tcp["host"], tcp["port"], tcp.get("timeout_sec", 5), wait_ack=tcp.get("wait_ack", False)
        )
        attempts = self.retry.get("attempts", 3)
        backoff = self.retry.get("backoff_sec", 2)
        for i in range(1, attempts + 1):
            try:
                code = await sender.send(hl7)
                logger.info(f"Orden enviada por TCP (MLLP) ack={code or '-'}")
                if code and code not in ("AA", "CA"):
                    logger.warning(f"El LIS rechazó la orden (MSA-1={code})")
                break
            except (OSError, asyncio.TimeoutError) as ex:
                logger.error(f"Intento {i}/{attempts} falló: {ex}")
                if i < attempts:
                    await asyncio.sleep(backoff)
                else:
                    raise
        return hl7
