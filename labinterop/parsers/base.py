import re
from typing import List, Optional, Sequence

from .models import DEFAULT_DELIMITERS, CodedElement, Delimiters, Provider

_SEGMENT_SPLIT = re.compile(r"\r\n|\n|\r")


def split_segments(hl7_text: str) -> List[str]:
    """Divide en segmentos HL7 (CR, LF o CRLF), omite líneas en blanco."""
    return [s for s in _SEGMENT_SPLIT.split(hl7_text or "") if s.strip()]


def _split_fields(seg: str, d: Delimiters = DEFAULT_DELIMITERS) -> List[str]:
    return seg.split(d.field)


def _split_comp(val: Optional[str], d: Delimiters = DEFAULT_DELIMITERS) -> List[str]:
    return val.split(d.component) if val else []


def _split_rep(val: Optional[str], d: Delimiters = DEFAULT_DELIMITERS) -> List[str]:
    return val.split(d.repetition) if val else []


def _at(items: Sequence[str], idx: int) -> Optional[str]:
    # fuera de rango o vacío => ausente
    if 0 <= idx < len(items) and items[idx] != "":
        return items[idx]
    return None


def _join_comp(parts: Sequence[Optional[str]], d: Delimiters = DEFAULT_DELIMITERS) -> str:
    values = ["" if p is None else str(p) for p in parts]
    while values and values[-1] == "":
        values.pop()
    return d.component.join(values)


def _join_rep(items: Optional[Sequence[str]], d: Delimiters = DEFAULT_DELIMITERS) -> str:
    return d.repetition.join(items) if items else ""


def _positional(values: dict, size: int) -> List[str]:
    """Arma el arreglo posicional completo; posiciones sin valor => ''."""
    fields = [""] * size
    for idx, val in values.items():
        if val is not None:
            fields[idx] = val
    return fields


def escape_value(value: str, d: Delimiters = DEFAULT_DELIMITERS) -> str:
    """Escapa separadores dentro de un valor (\\F\\ \\S\\ \\T\\ \\R\\ \\E\\).

    El generador NO escapa nada; esto es para quien arma los campos.
    """
    e = d.escape
    out = value.replace(e, f"{e}E{e}")
    for ch, code in (
        (d.field, "F"),
        (d.component, "S"),
        (d.subcomponent, "T"),
        (d.repetition, "R"),
    ):
        out = out.replace(ch, f"{e}{code}{e}")
    return out


def unescape_value(value: str, d: Delimiters = DEFAULT_DELIMITERS) -> str:
    e = d.escape
    table = {
        "F": d.field,
        "S": d.component,
        "T": d.subcomponent,
        "R": d.repetition,
        "E": e,
    }
    pattern = re.compile(re.escape(e) + "([FSTRE])" + re.escape(e))
    return pattern.sub(lambda m: table[m.group(1)], value)


def _coded(val: Optional[str], d: Delimiters = DEFAULT_DELIMITERS) -> Optional[CodedElement]:
    # identificador^texto^sistema (OBR-4, OBX-3)
    if not val:
        return None
    c = _split_comp(val, d)
    return CodedElement(identifier=_at(c, 0), text=_at(c, 1), coding_system=_at(c, 2))


def _provider(val: Optional[str], d: Delimiters = DEFAULT_DELIMITERS) -> Optional[Provider]:
    if not val:
        return None
    c = _split_comp(val, d)
    return Provider(id=_at(c, 0), family_name=_at(c, 1), given_name=_at(c, 2))


def _encode_coded(ce: Optional[CodedElement], d: Delimiters = DEFAULT_DELIMITERS) -> str:
    if ce is None:
        return ""
    return _join_comp([ce.identifier, ce.text, ce.coding_system], d)


def _encode_provider(p: Optional[Provider], d: Delimiters = DEFAULT_DELIMITERS) -> str:
    if p is None:
        return ""
    return _join_comp([p.id, p.family_name, p.given_name], d)
