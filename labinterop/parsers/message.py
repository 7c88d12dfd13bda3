import random
import re
import time
from datetime import datetime
from typing import List, Optional, Union

from .base import _at, _split_comp, _split_fields, split_segments
from .models import (
    DEFAULT_DELIMITERS,
    DEFAULT_ENCODING_CHARS,
    Delimiters,
    HL7Message,
    MessageDraft,
    MessageType,
    Segment,
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_HL7_TS_FORMATS = {8: "%Y%m%d", 10: "%Y%m%d%H", 12: "%Y%m%d%H%M", 14: "%Y%m%d%H%M%S"}
_HL7_TS_RE = re.compile(r"\d{8}(\d{2}(\d{2}(\d{2})?)?)?")


def _parse_segment(line: str, d: Delimiters) -> Segment:
    if line.startswith("MSH"):
        # MSH-1 es el propio separador: los campos arrancan en MSH-2 (index 4)
        return Segment("MSH", tuple(line[4:].split(d.field)) if len(line) > 4 else ())
    parts = _split_fields(line, d)
    return Segment(parts[0], tuple(parts[1:]))


def parse_message(raw_text: str) -> HL7Message:
    """Parsea texto HL7 crudo a un HL7Message.

    Nunca lanza: campos faltantes quedan como '' o no existen. Los separadores
    se establecen en cada MSH y viven sólo dentro de esta llamada.
    """
    delimiters = DEFAULT_DELIMITERS
    segments: List[Segment] = []
    seg_delims: List[Delimiters] = []
    header: Optional[Segment] = None
    header_delims = DEFAULT_DELIMITERS

    for line in split_segments(raw_text):
        if line.startswith("MSH"):
            delimiters = Delimiters.from_msh(line)
        seg = _parse_segment(line, delimiters)
        segments.append(seg)
        seg_delims.append(delimiters)
        if seg.type == "MSH" and header is None:
            header, header_delims = seg, delimiters

    if header is None:
        return HL7Message(segments=tuple(segments), segment_delimiters=tuple(seg_delims))

    f = header.fields
    msg_type = _split_comp(_at(f, 7), header_delims)
    return HL7Message(
        segments=tuple(segments),
        message_type=_at(msg_type, 0) or "",
        trigger_event=_at(msg_type, 1) or "",
        message_control_id=_at(f, 8) or "",
        processing_id=_at(f, 9) or "",
        version=_at(f, 10) or "",
        sending_application=_at(f, 1) or "",
        sending_facility=_at(f, 2) or "",
        receiving_application=_at(f, 3) or "",
        receiving_facility=_at(f, 4) or "",
        timestamp=_at(f, 5) or "",
        delimiters=header_delims,
        segment_delimiters=tuple(seg_delims),
    )


def generate_message_control_id() -> str:
    """<epoch-ms><9 chars base36>. Unicidad probabilística, no garantizada."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"{int(time.time() * 1000)}{suffix}"


def format_hl7_timestamp(value: Union[datetime, str, None] = None) -> str:
    """Formatea a YYYYMMDDHHMMSS.

    Acepta datetime, texto HL7 (YYYYMMDD[HH[MM[SS]]]) o ISO-8601. Un texto que no
    se pueda interpretar se devuelve tal cual (ya viene formateado por el caller).
    """
    if value is None or value == "":
        return datetime.now().strftime("%Y%m%d%H%M%S")
    if isinstance(value, datetime):
        return value.strftime("%Y%m%d%H%M%S")
    text = str(value).strip()
    # el formato sale del largo: strptime acepta %M o %H de un dígito
    if _HL7_TS_RE.fullmatch(text):
        try:
            return datetime.strptime(text, _HL7_TS_FORMATS[len(text)]).strftime("%Y%m%d%H%M%S")
        except ValueError:
            return text
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).strftime("%Y%m%d%H%M%S")
    except ValueError:
        return text


def _msh_line(draft) -> str:
    msg_type = getattr(draft, "message_type", None) or MessageType.ADT
    if isinstance(msg_type, MessageType):
        msg_type = msg_type.value
    trigger = getattr(draft, "trigger_event", None)
    if trigger:
        msg_type = f"{msg_type}{DEFAULT_DELIMITERS.component}{trigger}"
    fields = [
        "MSH",
        DEFAULT_ENCODING_CHARS,
        getattr(draft, "sending_application", None) or "",
        getattr(draft, "sending_facility", None) or "",
        getattr(draft, "receiving_application", None) or "",
        getattr(draft, "receiving_facility", None) or "",
        format_hl7_timestamp(getattr(draft, "timestamp", None)),
        "",
        msg_type,
        getattr(draft, "message_control_id", None) or generate_message_control_id(),
        "P",
        getattr(draft, "version", None) or "2.5",
    ]
    return DEFAULT_DELIMITERS.field.join(fields)


def generate_segment(segment: Segment) -> str:
    # Sin re-escape: el contenido con separadores debe venir escapado
    return DEFAULT_DELIMITERS.field.join([segment.type, *segment.fields])


def generate_message(draft: Union[HL7Message, MessageDraft, None] = None) -> str:
    """Serializa un mensaje: MSH nuevo + resto de segmentos, unidos con CRLF."""
    draft = draft if draft is not None else MessageDraft()
    lines = [_msh_line(draft)]
    for seg in getattr(draft, "segments", None) or ():
        if seg.type != "MSH":
            lines.append(generate_segment(seg))
    return "\r\n".join(lines)
