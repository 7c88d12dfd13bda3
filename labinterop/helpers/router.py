from datetime import datetime
from pathlib import Path
from typing import Union

from labinterop.commons.hl7_engine import HL7Engine
from labinterop.commons.types import OrderPayload
from labinterop.parsers.message import format_hl7_timestamp
from labinterop.parsers.models import (
    CodedElement,
    MessageDraft,
    MessageType,
    OBRSegment,
    ORCSegment,
    PatientIdentifier,
    PatientName,
    PIDSegment,
    Provider,
)
from labinterop.parsers.orders import encode_obr, encode_orc
from labinterop.parsers.pid import encode_pid


def _replace_none(obj):
    if isinstance(obj, dict):
        return {k: _replace_none(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_replace_none(x) for x in obj]
    elif obj is None:
        return ""
    return obj


class FlowRouter:
    def __init__(self, engine: HL7Engine, cfg):
        self.engine = engine
        self.cfg = cfg
        self.paths = cfg["paths"]

    def archive_raw(self, direction: str, hl7_text: str, tag: str) -> Path:
        base = Path(self.paths["logs_root"]) / "raw" / direction
        base.mkdir(parents=True, exist_ok=True)
        name = f'{datetime.now().strftime("%Y%m%d_%H%M%S_%f")}_{tag}.hl7'
        path = base / name
        path.write_text(hl7_text, encoding="utf-8")
        return path

    # Renderizar orden -> texto HL7 (ORM^O01: PID + ORC/OBR por examen)
    def render_order(self, payload: Union[OrderPayload, dict]) -> str:
        order = payload if isinstance(payload, OrderPayload) else OrderPayload(**payload)
        p = order.patient
        pid = PIDSegment(
            set_id="1",
            identifiers=[PatientIdentifier(id=p.id, assigning_authority=p.assigning_authority)],
            names=[PatientName(family_name=p.family_name, given_name=p.given_name or None)],
            date_of_birth=p.date_of_birth or None,
            sex=p.sex or None,
        )
        provider = None
        if order.provider:
            provider = Provider(
                id=order.provider.id,
                family_name=order.provider.family_name or None,
                given_name=order.provider.given_name or None,
            )

        segments = [encode_pid(pid)]
        for i, item in enumerate(order.items, start=1):
            ordered = format_hl7_timestamp(item.ordered_at)
            collected = format_hl7_timestamp(item.collected_at) if item.collected_at else None
            segments.append(
                encode_orc(
                    ORCSegment(
                        order_control="NW",
                        placer_order_number=item.placer_id,
                        filler_order_number=item.order_id,
                        date_time_of_transaction=ordered,
                        ordering_provider=provider,
                    )
                )
            )
            segments.append(
                encode_obr(
                    OBRSegment(
                        set_id=str(i),
                        placer_order_number=item.placer_id,
                        filler_order_number=item.order_id,
                        universal_service_id=CodedElement(
                            identifier=item.code,
                            text=item.description,
                            coding_system=item.coding_system or None,
                        ),
                        priority=item.priority,
                        requested_date_time=ordered,
                        observation_date_time=collected,
                        ordering_provider=provider,
                    )
                )
            )

        draft = MessageDraft(
            segments=segments,
            message_type=MessageType.ORM,
            trigger_event="O01",
            message_control_id=order.message_control_id,
        )
        return self.engine.generate(draft)

    # Transformar resultado HL7 -> dict
    def transform_hl7_result(self, hl7_text: str) -> dict:
        return _replace_none(self.engine.parse_and_map(hl7_text))
