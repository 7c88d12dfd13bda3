from dataclasses import replace
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from labinterop.commons.hl7_normalizer import HL7Normalizer
from labinterop.commons.types import HL7Cfg
from labinterop.parsers.message import generate_message, parse_message
from labinterop.parsers.models import HL7Message, LabReport, MessageDraft
from labinterop.validation.validators import ValidationReport, validate_message


class HL7Engine:
    """Engine facade that loads config and exposes parse/generate/normalize.

    Acepta ruta a YAML, dict ya cargado o nada (defaults).
    """

    def __init__(self, config_path_or_obj: Any = None):
        if isinstance(config_path_or_obj, str):
            with open(config_path_or_obj, "r", encoding="utf-8") as f:
                self.cfg = yaml.safe_load(f) or {}
        elif isinstance(config_path_or_obj, dict):
            self.cfg = config_path_or_obj
        else:
            self.cfg = {}

        self.hl7 = HL7Cfg(**self.cfg.get("hl7", {}))
        self.normalizer = HL7Normalizer()

    def parse(self, hl7_text: str) -> HL7Message:
        message = parse_message(hl7_text)
        logger.debug(
            f"HL7 {message.message_type or '?'} ctrl={message.message_control_id or '-'} "
            f"segmentos={len(message.segments)}"
        )
        return message

    def validate(self, message: HL7Message) -> ValidationReport:
        return validate_message(message)

    def generate(self, draft: Optional[MessageDraft] = None) -> str:
        """Completa remitente/receptor/versión desde config si el draft no los trae."""
        draft = draft or MessageDraft()
        cfg = self.hl7
        filled = replace(
            draft,
            sending_application=draft.sending_application or cfg.sending_application,
            sending_facility=draft.sending_facility or cfg.sending_facility,
            receiving_application=draft.receiving_application or cfg.receiving_application,
            receiving_facility=draft.receiving_facility or cfg.receiving_facility,
            version=draft.version or cfg.version,
        )
        return generate_message(filled)

    def normalize(self, hl7_text: str) -> LabReport:
        return self.normalizer.normalize_message(self.parse(hl7_text))

    def to_payload(self, report: LabReport) -> Dict:
        return self.normalizer.to_payload(report)

    def parse_and_map(self, hl7_text: str) -> Dict:
        return self.to_payload(self.normalize(hl7_text))

    def get_value(self, hl7_text: str, path: str) -> Optional[str]:
        return self.normalizer.get_value_from_hl7(hl7_text, path)
