# labinterop/services/results_service.py
import asyncio
import json
import os
import re
import shutil
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple, Union

from pydantic import ValidationError

from labinterop.commons.logger import logger
from labinterop.helpers.file_transport import FileWatcher
from labinterop.helpers.router import FlowRouter
from labinterop.helpers.tcp_transport import TcpServer
from labinterop.validation.validators import validate_hl7_message_or_raise


def generate_inbox_filename(
    source: Union[Tuple[str, int], str],
    message_type: str = "unknown",
    origin: str = "auto",  # tcp | file | manual | auto
    extension: str = "json",
) -> str:
    """
    Nombre de archivo con timestamp (orden natural) y origen. Ej:
    - TCP:   20250821-170605-123456_ORU_tcp_192_168_1_45_5002.json
    - FILE:  20250821-170605-123456_ORU_file_result_001.json
    """
    if not isinstance(source, (tuple, str)):
        raise TypeError(
            f"Invalid type for source: expected tuple or str, got {type(source).__name__}"
        )

    ts = datetime.utcnow().strftime("%Y%m%d-%H%M%S-%f")
    if isinstance(source, tuple):
        ip, port = source[0], source[1]
        ip_safe = re.sub(r"\W", "_", str(ip))
        source_str = f"{origin}_{ip_safe}_{port}"
    else:
        base_name = os.path.splitext(os.path.basename(source))[0]
        safe_base = re.sub(r"[^a-zA-Z0-9_\-]", "_", base_name)
        source_str = f"{origin}_{safe_base}"
    return f"{ts}_{message_type or 'unknown'}_{source_str}.{extension}"


class ResultsService:
    """Resultados entrantes (carpeta o MLLP) -> JSON en archive/.

    Los analizadores reenvían el mismo mensaje si no les llegó el ACK: un
    control ID ya procesado se vuelve a confirmar pero no se re-escribe.
    """

    def __init__(self, router: FlowRouter, paths: dict, dedup_size: int = 1000):
        self.router = router
        self.paths = paths
        self.dedup_size = dedup_size
        self._seen: "OrderedDict[str, Path]" = OrderedDict()
        Path(paths["archive"]).mkdir(parents=True, exist_ok=True)
        Path(paths["error"]).mkdir(parents=True, exist_ok=True)

    def _to_error(self, hl7_text: str, src: Optional[str]) -> Path:
        err_name = Path(src).name if src and not src.startswith("tcp_") else "tcp_result.err.hl7"
        errp = Path(self.paths["error"]) / err_name
        errp.write_text(hl7_text, encoding="utf-8")
        return errp

    def _remember(self, control_id: str, out_json: Path):
        self._seen[control_id] = out_json
        while len(self._seen) > self.dedup_size:
            self._seen.popitem(last=False)

    def _move_processed(self, src: Optional[str], is_file: bool):
        # el HL7 procesado pasa a archive/hl7/
        if is_file and Path(src).exists():
            dst_dir = Path(self.paths["archive"]) / "hl7"
            dst_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(src, dst_dir / Path(src).name)

    async def _process_text(self, hl7_text: str, src: Optional[str]) -> Optional[Path]:
        # 1) archiva crudo siempre
        self.router.archive_raw("recv", hl7_text, tag="result")
        try:
            # 2) valida (MSH, MSH-9 y MSH-10 requeridos)
            message = validate_hl7_message_or_raise(hl7_text)
            is_file = bool(src) and not src.startswith("tcp_")
            previous = self._seen.get(message.message_control_id)
            if previous is not None:
                logger.info(f"Mensaje duplicado {message.message_control_id}, ya en {previous}")
                self._move_processed(src, is_file)
                return previous
            # 3) normaliza y escribe JSON
            data = self.router.transform_hl7_result(hl7_text)
            filename = generate_inbox_filename(
                src or "manual", message.message_type, origin="file" if is_file else "tcp"
            )
            out_json = Path(self.paths["archive"]) / filename
            out_json.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            logger.info(f"Resultado procesado y archivado: {out_json}")

            self._remember(message.message_control_id, out_json)
            self._move_processed(src, is_file)
            return out_json

        except ValidationError as ve:
            # Mensaje inválido: a error/ sin tumbar el servicio
            errp = self._to_error(hl7_text, src)
            logger.error(f"Validación falló para {errp.name}: {ve}")
            return None
        except Exception as ex:
            errp = self._to_error(hl7_text, src)
            logger.exception(f"Error procesando resultado: {ex}. Movido a {errp}")
            return None

    async def _process_backlog(self, glob_pat: str):
        inbox = Path(self.paths["inbox"])
        files = sorted(inbox.glob(glob_pat))
        if not files:
            return
        logger.info(f"Backlog detectado: {len(files)} archivo(s) en {inbox}")
        for f in files:
            try:
                text = f.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning(f"No se pudo leer {f}: {e}; reintento breve...")
                await asyncio.sleep(0.1)
                text = f.read_text(encoding="utf-8")
            await self._process_text(text, str(f))

    async def run_file_mode(self, glob_pat: str, stop_event: Optional[asyncio.Event] = None):
        loop = asyncio.get_running_loop()

        # 1) Procesar backlog existente
        await self._process_backlog(glob_pat)

        # 2) Watcher para archivos nuevos
        watcher = FileWatcher(self.paths["inbox"], glob_pat, self._process_text, loop)
        watcher.start()
        logger.info("Escuchando carpeta de resultados...")
        try:
            await (stop_event or asyncio.Event()).wait()
        finally:
            watcher.stop()

    async def run_tcp_mode(self, host: str, port: int):
        server = TcpServer(
            host, port, lambda txt, peer: self._process_text(txt, f"tcp_{peer[0]}_{peer[1]}")
        )
        logger.info(f"Servidor TCP (MLLP) de resultados en {host}:{port}")
        await server.start()
