from typing import Optional

from .base import _at, _coded, _encode_coded, _encode_provider, _positional, _provider
from .models import DEFAULT_DELIMITERS, Delimiters, OBRSegment, ORCSegment, Segment

OBR_SIZE = 26
ORC_SIZE = 15


def decode_obr(segment: Segment, d: Delimiters = DEFAULT_DELIMITERS) -> Optional[OBRSegment]:
    if segment.type != "OBR":
        return None
    f = segment.fields
    return OBRSegment(
        set_id=_at(f, 0),
        placer_order_number=_at(f, 1),
        filler_order_number=_at(f, 2),
        universal_service_id=_coded(_at(f, 3), d),
        priority=_at(f, 4),
        requested_date_time=_at(f, 5),
        observation_date_time=_at(f, 6),
        observation_end_date_time=_at(f, 7),
        ordering_provider=_provider(_at(f, 15), d),
        filler_field_1=_at(f, 21),
        filler_field_2=_at(f, 22),
        diagnostic_serv_sect_id=_at(f, 24),
        result_status=_at(f, 25),
    )


def encode_obr(obr: OBRSegment, d: Delimiters = DEFAULT_DELIMITERS) -> Segment:
    fields = _positional(
        {
            0: obr.set_id or "1",
            1: obr.placer_order_number,
            2: obr.filler_order_number,
            3: _encode_coded(obr.universal_service_id, d),
            4: obr.priority,
            5: obr.requested_date_time,
            6: obr.observation_date_time,
            7: obr.observation_end_date_time,
            15: _encode_provider(obr.ordering_provider, d),
            21: obr.filler_field_1,
            22: obr.filler_field_2,
            24: obr.diagnostic_serv_sect_id,
            25: obr.result_status,
        },
        OBR_SIZE,
    )
    return Segment("OBR", tuple(fields))


def decode_orc(segment: Segment, d: Delimiters = DEFAULT_DELIMITERS) -> Optional[ORCSegment]:
    if segment.type != "ORC":
        return None
    f = segment.fields
    return ORCSegment(
        order_control=_at(f, 0) or "",
        placer_order_number=_at(f, 1),
        filler_order_number=_at(f, 2),
        placer_group_number=_at(f, 3),
        order_status=_at(f, 4),
        response_flag=_at(f, 5),
        date_time_of_transaction=_at(f, 8),
        ordering_provider=_provider(_at(f, 11), d),
        order_effective_date_time=_at(f, 14),
    )


def encode_orc(orc: ORCSegment, d: Delimiters = DEFAULT_DELIMITERS) -> Segment:
    # ORC-1 es obligatorio y no tiene default: se emite tal cual
    fields = _positional(
        {
            0: orc.order_control,
            1: orc.placer_order_number,
            2: orc.filler_order_number,
            3: orc.placer_group_number,
            4: orc.order_status,
            5: orc.response_flag,
            8: orc.date_time_of_transaction,
            11: _encode_provider(orc.ordering_provider, d),
            14: orc.order_effective_date_time,
        },
        ORC_SIZE,
    )
    return Segment("ORC", tuple(fields))
