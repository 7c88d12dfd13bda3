from typing import Optional

from .base import _at, _join_rep, _positional, _split_rep
from .models import DEFAULT_DELIMITERS, Delimiters, NTESegment, Segment


def decode_nte(segment: Segment, d: Delimiters = DEFAULT_DELIMITERS) -> Optional[NTESegment]:
    if segment.type != "NTE":
        return None
    f = segment.fields
    return NTESegment(
        set_id=_at(f, 0),
        source_of_comment=_at(f, 1),
        comment=_split_rep(_at(f, 2), d) or None,
        comment_type=_at(f, 3),
    )


def encode_nte(nte: NTESegment, d: Delimiters = DEFAULT_DELIMITERS) -> Segment:
    fields = _positional(
        {
            0: nte.set_id,
            1: nte.source_of_comment,
            2: _join_rep(nte.comment, d),
            3: nte.comment_type,
        },
        4,
    )
    return Segment("NTE", tuple(fields))
