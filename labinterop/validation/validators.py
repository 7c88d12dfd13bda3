# labinterop/validation/validators.py
from typing import List

from pydantic import BaseModel, field_validator

from labinterop.parsers.message import parse_message
from labinterop.parsers.models import HL7Message

MISSING_MSH = "Missing required MSH segment"
MISSING_CONTROL_ID = "Missing message control ID"
MISSING_MESSAGE_TYPE = "Missing message type"


class ValidationReport(BaseModel):
    valid: bool
    errors: List[str] = []


def validate_message(message: HL7Message) -> ValidationReport:
    """Acumula todos los errores (no corta en el primero)."""
    errors: List[str] = []
    if message.msh is None:
        errors.append(MISSING_MSH)
    if not message.message_control_id:
        errors.append(MISSING_CONTROL_ID)
    if not message.message_type:
        errors.append(MISSING_MESSAGE_TYPE)
    return ValidationReport(valid=not errors, errors=errors)


class HL7MessageMeta(BaseModel):
    msh_9: str  # Debe existir (ej: "ORU")
    msh_10: str

    @field_validator("msh_9")
    @classmethod
    def _type_not_empty(cls, v: str):
        if not v or not v.strip():
            raise ValueError("MSH-9 es obligatorio")
        return v

    @field_validator("msh_10")
    @classmethod
    def _control_id_not_empty(cls, v: str):
        if not v or not v.strip():
            raise ValueError("MSH-10 es obligatorio")
        return v


class MessageValidation(BaseModel):
    has_msh: bool
    header: HL7MessageMeta

    @field_validator("has_msh")
    @classmethod
    def _msh_present(cls, v: bool):
        if not v:
            raise ValueError(MISSING_MSH)
        return v


def validate_hl7_message_or_raise(hl7_text: str) -> HL7Message:
    """Versión estricta para el borde: levanta pydantic.ValidationError."""
    message = parse_message(hl7_text)
    MessageValidation(
        has_msh=message.msh is not None,
        header={"msh_9": message.message_type, "msh_10": message.message_control_id},
    )
    return message
