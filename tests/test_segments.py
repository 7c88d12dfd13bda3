# flake8: noqa
"""
test_segments.py

Codecs de segmento PID / OBR / OBX / ORC / NTE (decode tolerante, encode posicional).
"""

from labinterop.parsers.base import escape_value, unescape_value
from labinterop.parsers.message import parse_message
from labinterop.parsers.models import (
    CodedElement,
    Delimiters,
    NTESegment,
    OBRSegment,
    OBXSegment,
    ORCSegment,
    PatientIdentifier,
    PatientName,
    PIDSegment,
    Provider,
    Segment,
)
from labinterop.parsers.nte import decode_nte, encode_nte
from labinterop.parsers.obx import decode_obx, encode_obx
from labinterop.parsers.orders import decode_obr, decode_orc, encode_obr, encode_orc
from labinterop.parsers.pid import decode_pid, encode_pid


def seg(line: str) -> Segment:
    parts = line.split("|")
    return Segment(parts[0], tuple(parts[1:]))


PID_LINE = (
    "PID|1||12345^^^MRN^MR~98765^^^SSA^SS||Doe^John^^Jr^Dr~Smith^Jane||19800101|M|||"
    "123 Main St^Apt 4^Springfield^IL^62701^USA||555-1234|555-9876||M|||123-45-6789"
)


def test_pid_repeating_names():
    pid = decode_pid(seg("PID|1||123||Doe^John^^Jr^Dr~Smith^Jane"))
    assert len(pid.names) == 2
    first, second = pid.names
    assert first.family_name == "Doe"
    assert first.given_name == "John"
    assert first.middle_name is None
    assert first.suffix == "Jr"
    assert first.prefix == "Dr"
    assert second.family_name == "Smith"
    assert second.given_name == "Jane"
    assert second.suffix is None


def test_pid_full_decode():
    pid = decode_pid(seg(PID_LINE))
    assert pid.set_id == "1"
    assert pid.patient_id is None
    assert [i.id for i in pid.identifiers] == ["12345", "98765"]
    assert pid.identifiers[0].assigning_authority == "MRN"
    assert pid.identifiers[1].identifier_type == "SS"
    assert pid.date_of_birth == "19800101"
    assert pid.sex == "M"
    addr = pid.addresses[0]
    assert addr.street == "123 Main St"
    assert addr.city == "Springfield"
    assert addr.zip_code == "62701"
    assert addr.country == "USA"
    assert pid.phone_home == "555-1234"
    assert pid.phone_business == "555-9876"
    assert pid.marital_status == "M"
    assert pid.ssn == "123-45-6789"


def test_pid_short_segment_is_tolerated():
    pid = decode_pid(seg("PID|1"))
    assert pid.set_id == "1"
    assert pid.names is None
    assert pid.identifiers is None
    assert pid.ssn is None


def test_decode_wrong_segment_type_returns_none():
    assert decode_pid(seg("OBX|1")) is None
    assert decode_obr(seg("PID|1")) is None
    assert decode_obx(seg("OBR|1")) is None
    assert decode_orc(seg("NTE|1")) is None
    assert decode_nte(seg("ORC|NW")) is None


def test_pid_encode_positional():
    pid = PIDSegment(
        set_id="1",
        identifiers=[PatientIdentifier(id="123", assigning_authority="MRN")],
        names=[PatientName(family_name="Doe", given_name="John")],
        date_of_birth="19800101",
        sex="M",
    )
    out = encode_pid(pid)
    assert out.type == "PID"
    assert len(out.fields) == 19
    assert out.fields[2] == "123^^^MRN"
    assert out.fields[4] == "Doe^John"
    assert out.fields[6] == "19800101"
    assert out.fields[18] == ""


def test_pid_encode_then_decode():
    pid = decode_pid(seg(PID_LINE))
    again = decode_pid(encode_pid(pid))
    assert again == pid


def test_obr_decode():
    obr = decode_obr(
        seg("OBR|1|ORD1|FIL1|CBC^Complete Blood Count^LN|R|20250101080000|20250101090000|||||||||DOC1^House^Greg||||||||||F")
    )
    assert obr.placer_order_number == "ORD1"
    assert obr.filler_order_number == "FIL1"
    assert obr.universal_service_id == CodedElement("CBC", "Complete Blood Count", "LN")
    assert obr.priority == "R"
    assert obr.requested_date_time == "20250101080000"
    assert obr.observation_date_time == "20250101090000"
    assert obr.ordering_provider == Provider("DOC1", "House", "Greg")
    assert obr.result_status == "F"


def test_obr_encode_defaults_set_id():
    out = encode_obr(OBRSegment(universal_service_id=CodedElement("GLU", "Glucose")))
    assert len(out.fields) == 26
    assert out.fields[0] == "1"
    # componentes vacíos al final se recortan
    assert out.fields[3] == "GLU^Glucose"


def test_obx_decode_raw_values():
    obx = decode_obx(seg("OBX|2|NM|WBC^WBC||*7.7|10*3/uL|3.7-11.7|H~A|||F|||20250817140000"))
    assert obx.set_id == "2"
    assert obx.value_type == "NM"
    assert obx.observation_identifier.identifier == "WBC"
    assert obx.observation_value == ["*7.7"]
    assert obx.units == "10*3/uL"
    assert obx.reference_range == "3.7-11.7"
    assert obx.abnormal_flags == ["H", "A"]
    assert obx.result_status == "F"
    assert obx.date_time_of_observation == "20250817140000"


def test_obx_out_of_range_fields_are_none():
    obx = decode_obx(seg("OBX|1|NM"))
    assert obx.observation_identifier is None
    assert obx.observation_value is None
    assert obx.result_status is None
    assert obx.date_time_of_observation is None


def test_obx_encode_defaults():
    out = encode_obx(OBXSegment(observation_value=["5.5"]))
    assert len(out.fields) == 14
    assert out.fields[0] == "1"
    assert out.fields[1] == "ST"
    assert out.fields[4] == "5.5"
    assert out.fields[10] == "F"


def test_orc_decode_and_encode():
    orc = decode_orc(seg("ORC|NW|P1|F1|G1|IP||||20250101|||DOC^Who"))
    assert orc.order_control == "NW"
    assert orc.placer_group_number == "G1"
    assert orc.order_status == "IP"
    assert orc.date_time_of_transaction == "20250101"
    assert orc.ordering_provider.family_name == "Who"

    out = encode_orc(ORCSegment(order_control="CA", placer_order_number="P9"))
    assert len(out.fields) == 15
    assert out.fields[:2] == ("CA", "P9")


def test_orc_without_control_decodes_empty():
    assert decode_orc(seg("ORC")).order_control == ""


def test_nte_repeating_comment():
    nte = decode_nte(seg("NTE|1|L|Muestra hemolizada~Repetir|RE"))
    assert nte.comment == ["Muestra hemolizada", "Repetir"]
    assert nte.source_of_comment == "L"
    assert nte.comment_type == "RE"
    out = encode_nte(NTESegment(set_id="1", comment=["a", "b"]))
    assert out.fields == ("1", "", "a~b", "")


def test_codecs_use_message_delimiters():
    text = "MSH~*^!&~Icon~NI1~LIS~LIS~20250817141500~~ORU*R01~ALT~P~2.5\rOBX~1~NM~PLT*PLATELETS~~210^215~~~H^L~~~F\r"
    msg = parse_message(text)
    d = msg.delimiters
    obx = decode_obx(msg.first("OBX"), d)
    assert obx.observation_identifier == CodedElement("PLT", "PLATELETS")
    assert obx.observation_value == ["210", "215"]
    assert obx.abnormal_flags == ["H", "L"]
    out = encode_obx(obx, d)
    assert out.fields[2] == "PLT*PLATELETS"
    assert out.fields[4] == "210^215"


def test_escape_unescape():
    d = Delimiters()
    raw = "A|B^C&D~E\\F"
    escaped = escape_value(raw, d)
    assert "|" not in escaped and "^" not in escaped
    assert unescape_value(escaped, d) == raw
