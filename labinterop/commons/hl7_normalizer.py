from dataclasses import asdict
from typing import Dict, List, Optional

from loguru import logger

from labinterop.parsers.base import _split_comp
from labinterop.parsers.message import parse_message
from labinterop.parsers.models import HL7Message, LabReport, MSHSegment, NTESegment, OrderGroup
from labinterop.parsers.msh import decode_msh
from labinterop.parsers.nte import decode_nte
from labinterop.parsers.obx import decode_obx
from labinterop.parsers.orders import decode_obr, decode_orc
from labinterop.parsers.pid import decode_pid


def normalize_obx_value(raw: Optional[str]) -> dict:
    """OBX-5 de analizadores: '*7.7' (marcado), '<30' / '>500' (calificador), '-'."""
    raw = (raw or "").strip()
    if raw == "":
        return {"raw": "", "flagged": False, "dashed": False, "qualifier": None, "numeric": None}
    if raw == "-":
        return {"raw": "-", "flagged": False, "dashed": True, "qualifier": None, "numeric": None}
    flagged = raw.startswith("*")
    val = raw[1:] if flagged else raw
    qualifier = None
    if val.startswith(("<", ">")):
        qualifier, val = val[0], val[1:]
    try:
        num = float(val)
    except ValueError:
        num = None
    return {"raw": raw, "flagged": flagged, "dashed": False, "qualifier": qualifier, "numeric": num}


class HL7Normalizer:
    def normalize_message(self, message: HL7Message) -> LabReport:
        header = decode_msh(message) or MSHSegment()
        report = LabReport(
            header=header,
            message_type=message.message_type,
            trigger_event=message.trigger_event,
            patient=None,
            orders=[],
            notes=[],
        )
        current: Optional[OrderGroup] = None
        skipped: List[str] = []

        for seg, d in message.with_delimiters():
            if seg.type == "MSH":
                continue
            if seg.type == "PID":
                if report.patient is None:
                    report.patient = decode_pid(seg, d)
            elif seg.type == "ORC":
                current = OrderGroup(order=decode_orc(seg, d))
                report.orders.append(current)
            elif seg.type == "OBR":
                # OBR abre grupo salvo que venga justo después de su ORC
                if current is None or current.request is not None:
                    current = OrderGroup()
                    report.orders.append(current)
                current.request = decode_obr(seg, d)
            elif seg.type == "OBX":
                if current is None:
                    current = OrderGroup()
                    report.orders.append(current)
                current.observations.append(decode_obx(seg, d))
            elif seg.type == "NTE":
                target = current.notes if current is not None else report.notes
                target.append(decode_nte(seg, d))
            else:
                skipped.append(seg.type)

        if skipped:
            report.extras["skipped_segments"] = skipped
            logger.debug(f"Segmentos sin codec: {', '.join(skipped)}")
        return report

    def normalize(self, hl7_text: str) -> LabReport:
        return self.normalize_message(parse_message(hl7_text))

    def to_payload(self, report: LabReport) -> Dict:
        """Registro plano listo para persistir (JSON)."""
        orders = []
        for group in report.orders:
            results = []
            for obx in group.observations:
                first_value = obx.observation_value[0] if obx.observation_value else None
                item = asdict(obx)
                item["value_norm"] = normalize_obx_value(first_value)
                results.append(item)
            orders.append(
                {
                    "order": asdict(group.order) if group.order else None,
                    "request": asdict(group.request) if group.request else None,
                    "results": results,
                    "notes": [_note_text(n) for n in group.notes],
                }
            )
        return {
            "message_type": report.message_type,
            "trigger_event": report.trigger_event,
            "header": asdict(report.header),
            "patient": asdict(report.patient) if report.patient else None,
            "orders": orders,
            "notes": [_note_text(n) for n in report.notes],
            "extras": report.extras,
        }

    # -------- Acceso por ruta tipo 'OBX-5' / 'OBX-3-1' --------

    def get_value_from_hl7(self, hl7_text: str, path: str) -> Optional[str]:
        """
        Extrae un valor por ruta 'SEG-<campo>[-<componente>]' (numeración HL7,
        1-based) del primer segmento de ese tipo. Respeta separadores del MSH.
        """
        parts = path.split("-")
        if len(parts) < 2:
            return None
        seg_type = parts[0].strip().upper()
        try:
            field_no = int(parts[1])
            comp_idx = int(parts[2]) - 1 if len(parts) > 2 else None
        except ValueError:
            return None

        message = parse_message(hl7_text)
        found = next(((s, d) for s, d in message.with_delimiters() if s.type == seg_type), None)
        if found is None:
            return None
        seg, delims = found
        if seg_type == "MSH" and field_no == 1:
            return delims.field
        # MSH: fields[0] es MSH-2; resto: fields[0] es SEG-1
        idx = field_no - 2 if seg_type == "MSH" else field_no - 1
        if idx < 0 or idx >= len(seg.fields):
            return None
        val = seg.fields[idx]
        if comp_idx is None:
            return val
        comps = _split_comp(val, delims)
        return comps[comp_idx] if 0 <= comp_idx < len(comps) else None

    def extract(self, profile, hl7_text: str) -> Dict:
        """profile = { key: 'SEG-x-y' | [paths] } -> dict con valores."""
        out = {}
        if isinstance(profile, dict):
            for k, p in profile.items():
                if isinstance(p, str):
                    out[k] = self.get_value_from_hl7(hl7_text, p)
                elif isinstance(p, (list, tuple)):
                    out[k] = [self.get_value_from_hl7(hl7_text, q) for q in p]
        return out


def _note_text(nte: NTESegment) -> str:
    return " ".join(nte.comment or [])
