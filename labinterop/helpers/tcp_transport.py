import asyncio
from typing import Optional

from loguru import logger

from labinterop.parsers.message import generate_message, parse_message
from labinterop.parsers.models import MessageDraft, MessageType, Segment

VT = b"\x0b"  # <VT>
FS = b"\x1c"  # <FS>
CR = b"\x0d"  # <CR>

ACK_ACCEPT = "AA"
ACK_ERROR = "AE"


def frame_mllp(hl7_text: str) -> bytes:
    """Envuelve un mensaje en MLLP: <VT> mensaje <FS><CR>."""
    return VT + hl7_text.encode("utf-8") + FS + CR


def _take_frame(buf: bytearray) -> Optional[bytes]:
    """Saca del buffer el primer frame completo; None si falta data."""
    start = buf.find(VT)
    if start < 0:
        # Sin VT: basura, se descarta
        buf.clear()
        return None
    end = buf.find(FS + CR, start + 1)
    if end < 0:
        if start:
            del buf[:start]
        return None
    payload = bytes(buf[start + 1 : end])
    del buf[: end + 2]
    return payload


def _decode(payload: bytes) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        # analizadores viejos mandan latin-1
        return payload.decode("latin-1")


async def read_mllp_messages(reader: asyncio.StreamReader):
    """
    Lee un stream MLLP y produce mensajes HL7 (str) delimitados por VT ... FS CR.
    Permite múltiples mensajes en una sola conexión.
    """
    buf = bytearray()
    while True:
        chunk = await reader.read(4096)
        if not chunk:
            break
        buf.extend(chunk)
        while True:
            payload = _take_frame(buf)
            if payload is None:
                break
            yield _decode(payload)


def build_ack(hl7_text: str, code: str = ACK_ACCEPT, text: str = "") -> str:
    """ACK^<trigger> con MSA-1 = code y MSA-2 = control ID del mensaje recibido."""
    received = parse_message(hl7_text)
    msa = [code, received.message_control_id]
    if text:
        msa.append(text)
    draft = MessageDraft(
        segments=[Segment("MSA", tuple(msa))],
        message_type=MessageType.ACK,
        trigger_event=received.trigger_event or None,
        # se responde en espejo: el receptor pasa a ser el remitente
        sending_application=received.receiving_application,
        sending_facility=received.receiving_facility,
        receiving_application=received.sending_application,
        receiving_facility=received.sending_facility,
        version=received.version or None,
    )
    return generate_message(draft)


def ack_code(ack_text: str) -> Optional[str]:
    msa = parse_message(ack_text).first("MSA")
    return msa.get(0) if msa else None


class TcpSender:
    def __init__(self, host: str, port: int, timeout: float = 5.0, wait_ack: bool = False):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.wait_ack = wait_ack

    async def send(self, hl7_text: str) -> Optional[str]:
        """Envía un mensaje; con wait_ack devuelve MSA-1 del ACK recibido."""
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port), timeout=self.timeout
        )
        try:
            writer.write(frame_mllp(hl7_text))
            await writer.drain()
            if not self.wait_ack:
                return None
            ack = await asyncio.wait_for(self._read_one(reader), timeout=self.timeout)
            return ack_code(ack) if ack else None
        finally:
            writer.close()
            await writer.wait_closed()

    @staticmethod
    async def _read_one(reader) -> Optional[str]:
        async for msg in read_mllp_messages(reader):
            return msg
        return None


class TcpServer:
    """Servidor MLLP: entrega cada mensaje al callback y responde ACK.

    El callback devuelve algo distinto de None si el mensaje se procesó (AA);
    None responde AE.
    """

    def __init__(self, host: str, port: int, on_message_async, send_ack: bool = True):
        self.host = host
        self.port = port
        self.on_message_async = on_message_async
        self.send_ack = send_ack
        self._server = None

    async def _handle(self, reader, writer):
        peer = writer.get_extra_info("peername")
        try:
            async for hl7 in read_mllp_messages(reader):
                result = await self.on_message_async(hl7, peer)
                if self.send_ack:
                    code = ACK_ACCEPT if result is not None else ACK_ERROR
                    writer.write(frame_mllp(build_ack(hl7, code)))
                    await writer.drain()
        except ConnectionError as ex:
            logger.warning(f"Conexión MLLP cerrada por {peer}: {ex}")
        finally:
            writer.close()
            await writer.wait_closed()

    async def start(self):
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        async with self._server:
            await self._server.serve_forever()
