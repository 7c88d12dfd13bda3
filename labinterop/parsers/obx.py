from typing import Optional

from .base import _at, _coded, _encode_coded, _join_rep, _positional, _split_rep
from .models import DEFAULT_DELIMITERS, Delimiters, OBXSegment, Segment

OBX_SIZE = 14


def decode_obx(segment: Segment, d: Delimiters = DEFAULT_DELIMITERS) -> Optional[OBXSegment]:
    if segment.type != "OBX":
        return None
    f = segment.fields
    return OBXSegment(
        set_id=_at(f, 0),
        value_type=_at(f, 1),
        observation_identifier=_coded(_at(f, 2), d),
        observation_sub_id=_at(f, 3),
        # OBX-5 repetible; valores crudos (ej. '*7.7', '<30')
        observation_value=_split_rep(_at(f, 4), d) or None,
        units=_at(f, 5),
        reference_range=_at(f, 6),
        abnormal_flags=_split_rep(_at(f, 7), d) or None,
        result_status=_at(f, 10),
        date_time_of_observation=_at(f, 13),
    )


def encode_obx(obx: OBXSegment, d: Delimiters = DEFAULT_DELIMITERS) -> Segment:
    fields = _positional(
        {
            0: obx.set_id or "1",
            1: obx.value_type or "ST",
            2: _encode_coded(obx.observation_identifier, d),
            3: obx.observation_sub_id,
            4: _join_rep(obx.observation_value, d),
            5: obx.units,
            6: obx.reference_range,
            7: _join_rep(obx.abnormal_flags, d),
            10: obx.result_status or "F",
            13: obx.date_time_of_observation,
        },
        OBX_SIZE,
    )
    return Segment("OBX", tuple(fields))
