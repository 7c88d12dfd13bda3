# ===============================
# File: labinterop/parsers/models.py
# ===============================
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple, Union

DEFAULT_ENCODING_CHARS = "^~\\&"


class MessageType(str, Enum):
    ADT = "ADT"  # Admit, Discharge, Transfer
    ORM = "ORM"  # Order
    ORU = "ORU"  # Observation result
    ORR = "ORR"  # Order response
    QRY = "QRY"
    ACK = "ACK"
    SIU = "SIU"  # Scheduling
    MDM = "MDM"  # Medical document management


@dataclass(frozen=True)
class Delimiters:
    field: str = "|"
    component: str = "^"
    repetition: str = "~"
    escape: str = "\\"
    subcomponent: str = "&"

    @property
    def encoding_characters(self) -> str:
        return self.component + self.repetition + self.escape + self.subcomponent

    @classmethod
    def from_msh(cls, line: str) -> "Delimiters":
        """Separadores declarados por el propio MSH.

        - field sep = line[3]
        - encoding chars (MSH-2) = line[4:8]: comp, rept, esc, subcomp
        """
        if not line.startswith("MSH") or len(line) < 4:
            return cls()
        field_sep = line[3]
        enc = line[4:8].split(field_sep, 1)[0]
        defaults = DEFAULT_ENCODING_CHARS
        chars = [enc[i] if i < len(enc) else defaults[i] for i in range(4)]
        return cls(field_sep, chars[0], chars[1], chars[2], chars[3])


DEFAULT_DELIMITERS = Delimiters()


@dataclass(frozen=True)
class Segment:
    type: str
    fields: Tuple[str, ...] = ()

    def get(self, index: int) -> Optional[str]:
        """Campo crudo o None si no existe / viene vacío."""
        if 0 <= index < len(self.fields) and self.fields[index] != "":
            return self.fields[index]
        return None


@dataclass(frozen=True)
class HL7Message:
    segments: Tuple[Segment, ...] = ()
    message_type: str = ""
    message_control_id: str = ""
    trigger_event: str = ""
    sending_application: str = ""
    sending_facility: str = ""
    receiving_application: str = ""
    receiving_facility: str = ""
    timestamp: str = ""
    processing_id: str = ""
    version: str = ""
    delimiters: Delimiters = DEFAULT_DELIMITERS
    # separadores vigentes para cada segmento (un MSH posterior los cambia)
    segment_delimiters: Tuple[Delimiters, ...] = ()

    @property
    def msh(self) -> Optional[Segment]:
        return self.first("MSH")

    def first(self, seg_type: str) -> Optional[Segment]:
        return next((s for s in self.segments if s.type == seg_type), None)

    def segments_of(self, seg_type: str) -> List[Segment]:
        return [s for s in self.segments if s.type == seg_type]

    def with_delimiters(self) -> Iterator[Tuple[Segment, Delimiters]]:
        """(segmento, separadores con los que se leyó)."""
        for i, seg in enumerate(self.segments):
            if i < len(self.segment_delimiters):
                yield seg, self.segment_delimiters[i]
            else:
                yield seg, self.delimiters


@dataclass
class MessageDraft:
    """Mensaje saliente a medio armar; todo es opcional."""

    segments: List[Segment] = field(default_factory=list)
    message_type: Union[MessageType, str, None] = None
    trigger_event: Optional[str] = None
    message_control_id: Optional[str] = None
    sending_application: Optional[str] = None
    sending_facility: Optional[str] = None
    receiving_application: Optional[str] = None
    receiving_facility: Optional[str] = None
    timestamp: Optional[object] = None  # datetime | str HL7 | str ISO
    version: Optional[str] = None


# -------- Vistas tipadas de segmentos --------


@dataclass
class CodedElement:
    identifier: Optional[str] = None
    text: Optional[str] = None
    coding_system: Optional[str] = None


@dataclass
class Provider:
    id: Optional[str] = None
    family_name: Optional[str] = None
    given_name: Optional[str] = None


@dataclass
class PatientIdentifier:
    id: Optional[str] = None
    assigning_authority: Optional[str] = None
    identifier_type: Optional[str] = None


@dataclass
class PatientName:
    family_name: Optional[str] = None
    given_name: Optional[str] = None
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    prefix: Optional[str] = None


@dataclass
class PatientAddress:
    street: Optional[str] = None
    other_designation: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


@dataclass
class MSHSegment:
    field_separator: str = "|"
    encoding_characters: Optional[str] = None
    sending_application: Optional[str] = None
    sending_facility: Optional[str] = None
    receiving_application: Optional[str] = None
    receiving_facility: Optional[str] = None
    date_time_of_message: Optional[str] = None
    security: Optional[str] = None
    message_type: Optional[str] = None
    message_control_id: Optional[str] = None
    processing_id: Optional[str] = None
    version_id: Optional[str] = None


@dataclass
class PIDSegment:
    set_id: Optional[str] = None
    patient_id: Optional[str] = None  # PID-2, deprecated
    identifiers: Optional[List[PatientIdentifier]] = None
    names: Optional[List[PatientName]] = None
    date_of_birth: Optional[str] = None  # YYYYMMDD, sin validar
    sex: Optional[str] = None
    addresses: Optional[List[PatientAddress]] = None
    phone_home: Optional[str] = None
    phone_business: Optional[str] = None
    marital_status: Optional[str] = None
    ssn: Optional[str] = None


@dataclass
class OBRSegment:
    set_id: Optional[str] = None
    placer_order_number: Optional[str] = None
    filler_order_number: Optional[str] = None
    universal_service_id: Optional[CodedElement] = None
    priority: Optional[str] = None
    requested_date_time: Optional[str] = None
    observation_date_time: Optional[str] = None
    observation_end_date_time: Optional[str] = None
    ordering_provider: Optional[Provider] = None
    filler_field_1: Optional[str] = None
    filler_field_2: Optional[str] = None
    diagnostic_serv_sect_id: Optional[str] = None
    result_status: Optional[str] = None


@dataclass
class OBXSegment:
    set_id: Optional[str] = None
    value_type: Optional[str] = None
    observation_identifier: Optional[CodedElement] = None
    observation_sub_id: Optional[str] = None
    observation_value: Optional[List[str]] = None  # crudo, sin coerción numérica
    units: Optional[str] = None
    reference_range: Optional[str] = None
    abnormal_flags: Optional[List[str]] = None
    result_status: Optional[str] = None
    date_time_of_observation: Optional[str] = None


@dataclass
class ORCSegment:
    order_control: str
    placer_order_number: Optional[str] = None
    filler_order_number: Optional[str] = None
    placer_group_number: Optional[str] = None
    order_status: Optional[str] = None
    response_flag: Optional[str] = None
    date_time_of_transaction: Optional[str] = None
    ordering_provider: Optional[Provider] = None
    order_effective_date_time: Optional[str] = None


@dataclass
class NTESegment:
    set_id: Optional[str] = None
    source_of_comment: Optional[str] = None
    comment: Optional[List[str]] = None
    comment_type: Optional[str] = None


# -------- Resultado normalizado (mensaje -> registro de dominio) --------


@dataclass
class OrderGroup:
    order: Optional[ORCSegment] = None
    request: Optional[OBRSegment] = None
    observations: List[OBXSegment] = field(default_factory=list)
    notes: List[NTESegment] = field(default_factory=list)


@dataclass
class LabReport:
    header: MSHSegment
    message_type: str
    trigger_event: str
    patient: Optional[PIDSegment]
    orders: List[OrderGroup]
    notes: List[NTESegment]  # NTE antes de cualquier ORC/OBR
    extras: dict = field(default_factory=dict)
