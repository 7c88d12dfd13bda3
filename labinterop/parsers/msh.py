from typing import Optional

from .base import _at
from .models import HL7Message, MSHSegment


def decode_msh(message: HL7Message) -> Optional[MSHSegment]:
    """Vista del encabezado. Ojo: fields[0] es MSH-2, fields[i] es MSH-(i+2)."""
    seg = message.msh
    if seg is None:
        return None
    f = seg.fields
    return MSHSegment(
        field_separator=message.delimiters.field,
        encoding_characters=_at(f, 0),
        sending_application=_at(f, 1),
        sending_facility=_at(f, 2),
        receiving_application=_at(f, 3),
        receiving_facility=_at(f, 4),
        date_time_of_message=_at(f, 5),
        security=_at(f, 6),
        message_type=_at(f, 7),
        message_control_id=_at(f, 8),
        processing_id=_at(f, 9),
        version_id=_at(f, 10),
    )
