# flake8: noqa
import asyncio
from datetime import datetime

import pytest
from loguru import logger

from labinterop.commons.logger import qc_logger, setup_logging
from labinterop.helpers.file_transport import FileSender, FileWatcher
from labinterop.helpers.tcp_transport import TcpSender, TcpServer, ack_code, build_ack
from labinterop.parsers.message import parse_message

ORM = "MSH|^~\\&|LABINTEROP|LAB|LIS|LIS|20250817140000||ORM^O01|C1|P|2.5\r\nPID|1||123^^^MRN"


def test_file_sender_names_by_message_type(tmp_path):
    sender = FileSender(str(tmp_path / "outbox"), "{message_type}_{control_id}_{uuid}.hl7")
    p = sender.send(ORM, message_type="ORM", control_id="C1")
    assert p.name.startswith("ORM_C1_")
    assert p.read_bytes().decode("utf-8") == ORM
    # sin restos del archivo temporal
    assert [f.name for f in p.parent.iterdir()] == [p.name]


def test_file_sender_default_pattern(tmp_path):
    p = FileSender(str(tmp_path)).send(ORM)
    assert p.suffix == ".hl7"
    assert p.name[:8] == datetime.now().strftime("%Y%m%d")


@pytest.mark.asyncio
async def test_watcher_does_not_deliver_twice_while_in_flight(tmp_path):
    calls = []

    async def on_message(text, src):
        calls.append(src)

    loop = asyncio.get_running_loop()
    watcher = FileWatcher(str(tmp_path), "*.hl7", on_message, loop)
    f = tmp_path / "r1.hl7"
    f.write_text(ORM, encoding="utf-8")

    # created + modified del mismo archivo
    watcher._submit(f)
    watcher._submit(f)
    await asyncio.sleep(0.05)
    assert calls == [str(f)]

    # ya procesado: un nuevo evento se entrega otra vez
    watcher._submit(f)
    await asyncio.sleep(0.05)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_watcher_ignores_missing_and_partial_files(tmp_path):
    calls = []

    async def on_message(text, src):
        calls.append(src)

    watcher = FileWatcher(str(tmp_path), "*.hl7", on_message, asyncio.get_running_loop())
    watcher._submit(tmp_path / "gone.hl7")
    part = tmp_path / "x.hl7.part"
    part.write_text(ORM, encoding="utf-8")
    watcher._submit(part)
    await asyncio.sleep(0.05)
    assert calls == []


def test_qc_audit_sink(tmp_path):
    setup_logging(str(tmp_path), "INFO")
    qc_logger().info("QC GLU/normal/L1 valor=135")
    logger.info("mensaje general")
    logger.complete()
    logger.remove()

    qc_logs = list(tmp_path.rglob("qc.log"))
    app_logs = list(tmp_path.rglob("app.log"))
    assert len(qc_logs) == 1 and len(app_logs) == 1
    qc_text = qc_logs[0].read_text(encoding="utf-8")
    assert "valor=135" in qc_text
    assert "mensaje general" not in qc_text
    assert "mensaje general" in app_logs[0].read_text(encoding="utf-8")


# ----------------- MLLP / ACK -----------------
ORU = "MSH|^~\\&|Icon|NI1|LIS|LAB|20250817141000||ORU^R01|MSG42|P|2.5\rOBX|1|NM|HGB^HGB||145|g/L|||||F\r"


def test_build_ack_mirrors_header():
    ack = parse_message(build_ack(ORU))
    assert ack.message_type == "ACK"
    assert ack.trigger_event == "R01"
    assert ack.sending_application == "LIS"
    assert ack.receiving_application == "Icon"
    assert ack.receiving_facility == "NI1"
    msa = ack.first("MSA")
    assert msa.fields == ("AA", "MSG42")


def test_ack_code():
    assert ack_code(build_ack(ORU, "AE", "MSH-9 vacío")) == "AE"
    assert ack_code("MSH|^~\\&|A") is None


@pytest.mark.asyncio
async def test_server_acks_each_message():
    received = []

    async def on_message(text, peer):
        received.append(text)
        # el segundo mensaje "falla"
        return None if len(received) > 1 else "ok"

    server = TcpServer("127.0.0.1", 0, on_message)
    srv = await asyncio.start_server(server._handle, "127.0.0.1", 0)
    port = srv.sockets[0].getsockname()[1]
    try:
        sender = TcpSender("127.0.0.1", port, timeout=2, wait_ack=True)
        assert await sender.send(ORU) == "AA"
        assert await sender.send(ORU) == "AE"
    finally:
        srv.close()
        await srv.wait_closed()
    assert len(received) == 2
    assert received[0] == ORU
