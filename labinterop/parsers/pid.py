from typing import Optional

from .base import _at, _join_comp, _join_rep, _positional, _split_comp, _split_rep
from .models import (
    DEFAULT_DELIMITERS,
    Delimiters,
    PatientAddress,
    PatientIdentifier,
    PatientName,
    PIDSegment,
    Segment,
)

PID_SIZE = 19


def decode_pid(segment: Segment, d: Delimiters = DEFAULT_DELIMITERS) -> Optional[PIDSegment]:
    if segment.type != "PID":
        return None
    f = segment.fields
    pid = PIDSegment(
        set_id=_at(f, 0),
        patient_id=_at(f, 1),
        date_of_birth=_at(f, 6),
        sex=_at(f, 7),
        phone_home=_at(f, 12),
        phone_business=_at(f, 13),
        marital_status=_at(f, 15),
        ssn=_at(f, 18),
    )

    # PID-3: lista de identificadores (id^^^autoridad^tipo)
    if _at(f, 2):
        pid.identifiers = []
        for rep in _split_rep(f[2], d):
            c = _split_comp(rep, d)
            pid.identifiers.append(
                PatientIdentifier(id=_at(c, 0), assigning_authority=_at(c, 3), identifier_type=_at(c, 4))
            )

    # PID-5: apellido^nombre^segundo^sufijo^prefijo, repetible
    if _at(f, 4):
        pid.names = []
        for rep in _split_rep(f[4], d):
            c = _split_comp(rep, d)
            pid.names.append(
                PatientName(
                    family_name=_at(c, 0),
                    given_name=_at(c, 1),
                    middle_name=_at(c, 2),
                    suffix=_at(c, 3),
                    prefix=_at(c, 4),
                )
            )

    # PID-11: direcciones
    if _at(f, 10):
        pid.addresses = []
        for rep in _split_rep(f[10], d):
            c = _split_comp(rep, d)
            pid.addresses.append(
                PatientAddress(
                    street=_at(c, 0),
                    other_designation=_at(c, 1),
                    city=_at(c, 2),
                    state=_at(c, 3),
                    zip_code=_at(c, 4),
                    country=_at(c, 5),
                )
            )
    return pid


def encode_pid(pid: PIDSegment, d: Delimiters = DEFAULT_DELIMITERS) -> Segment:
    identifiers = [
        _join_comp([i.id, None, None, i.assigning_authority, i.identifier_type], d)
        for i in pid.identifiers or []
    ]
    names = [
        _join_comp([n.family_name, n.given_name, n.middle_name, n.suffix, n.prefix], d)
        for n in pid.names or []
    ]
    addresses = [
        _join_comp([a.street, a.other_designation, a.city, a.state, a.zip_code, a.country], d)
        for a in pid.addresses or []
    ]
    fields = _positional(
        {
            0: pid.set_id,
            1: pid.patient_id,
            2: _join_rep(identifiers, d),
            4: _join_rep(names, d),
            6: pid.date_of_birth,
            7: pid.sex,
            10: _join_rep(addresses, d),
            12: pid.phone_home,
            13: pid.phone_business,
            15: pid.marital_status,
            18: pid.ssn,
        },
        PID_SIZE,
    )
    return Segment("PID", tuple(fields))
