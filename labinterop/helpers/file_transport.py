import asyncio
import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Set

from loguru import logger
from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer

TMP_SUFFIX = ".part"


class FileSender:
    """Deja mensajes HL7 en el outbox del analizador / LIS.

    Escribe a <nombre>.part y renombra al final: quien vigila la carpeta nunca
    ve un mensaje a medias.
    """

    def __init__(self, outbox: str, pattern: str = "{timestamp}_{uuid}.hl7"):
        self.outbox = Path(outbox)
        self.outbox.mkdir(parents=True, exist_ok=True)
        self.pattern = pattern

    def filename(self, message_type: Optional[str] = None, control_id: Optional[str] = None) -> str:
        return self.pattern.format(
            timestamp=datetime.now().strftime("%Y%m%d%H%M%S"),
            uuid=uuid.uuid4().hex[:8],
            message_type=message_type or "HL7",
            control_id=control_id or "",
        )

    def send(
        self, hl7_text: str, message_type: Optional[str] = None, control_id: Optional[str] = None
    ) -> Path:
        final = self.outbox / self.filename(message_type, control_id)
        tmp = final.with_name(final.name + TMP_SUFFIX)
        tmp.write_text(hl7_text, encoding="utf-8")
        tmp.replace(final)
        return final


class _InboxHandler(PatternMatchingEventHandler):
    def __init__(self, glob: str, submit):
        super().__init__(patterns=[glob], ignore_directories=True)
        self._submit = submit

    def on_created(self, event: FileSystemEvent):
        self._submit(Path(event.src_path))

    def on_modified(self, event: FileSystemEvent):
        self._submit(Path(event.src_path))

    def on_moved(self, event: FileSystemEvent):
        # rename de <x>.part -> <x>.hl7 llega como moved
        self._submit(Path(event.dest_path))


class FileWatcher:
    """Observa el inbox y entrega cada archivo HL7 nuevo a una corrutina del loop.

    created + modified suelen llegar juntos para el mismo archivo: mientras
    un archivo está en vuelo no se vuelve a entregar.
    """

    def __init__(self, inbox: str, glob: str, on_message_async, loop: asyncio.AbstractEventLoop):
        self.inbox = Path(inbox)
        self.inbox.mkdir(parents=True, exist_ok=True)
        self.loop = loop
        self.on_message_async = on_message_async
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()
        self.handler = _InboxHandler(glob, self._submit)
        self.observer = Observer()

    def _read(self, path: Path) -> Optional[str]:
        # Espera breve hasta que termine de escribirse
        for _ in range(10):
            try:
                return path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except OSError:
                time.sleep(0.05)
        return path.read_text(encoding="utf-8")

    def _submit(self, path: Path):
        if path.name.endswith(TMP_SUFFIX):
            return
        key = str(path)
        with self._lock:
            if key in self._in_flight:
                return
            self._in_flight.add(key)
        try:
            # Si ya no existe (se movió a archive/), no hay nada que leer
            text = self._read(path) if path.exists() else None
        except OSError as ex:
            logger.error(f"No se pudo leer {path}: {ex}")
            text = None
        if text is None:
            self._release(key)
            return

        # Ejecutar la corrutina en el loop principal (thread-safe)
        fut = asyncio.run_coroutine_threadsafe(self.on_message_async(text, key), self.loop)
        fut.add_done_callback(lambda _: self._release(key))

    def _release(self, key: str):
        with self._lock:
            self._in_flight.discard(key)

    def start(self):
        self.observer.schedule(self.handler, str(self.inbox), recursive=False)
        self.observer.start()

    def stop(self):
        self.observer.stop()
        self.observer.join()
