from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ControlLevel = Literal["low", "normal", "high"]
QCStatus = Literal["accepted", "warning", "rejected"]
Severity = Literal["warning", "high", "critical"]


class Record(BaseModel):
    # Documentos de la base: forma explícita, nada de llaves sueltas
    model_config = ConfigDict(extra="forbid", frozen=True)


class ControlTarget(Record):
    test_id: str
    control_level: ControlLevel
    lot: str
    mean: float
    sd: float
    target_cv: Optional[float] = None


class QCEntry(Record):
    tenant_id: str
    test_id: str
    test_name: str
    control_level: ControlLevel
    lot: str
    value: float
    performed_by: str
    performed_at: datetime
    instrument_id: Optional[str] = None


class QCResult(Record):
    id: Optional[str] = None
    tenant_id: str
    test_id: str
    test_name: str
    control_level: ControlLevel
    lot: str
    value: float
    mean: float
    sd: float
    cv: float
    z_score: float
    violations: List[str] = []
    accepted: bool
    status: QCStatus
    is_outlier: bool = False
    severity: Optional[Severity] = None
    notification_sent: bool = False
    instrument_id: Optional[str] = None
    performed_by: str
    performed_at: datetime


class PatientResult(Record):
    id: str
    tenant_id: str
    test_id: str
    status: str  # validated | released | ...
    validated_at: Optional[datetime] = None


class Notification(Record):
    id: str
    type: Literal["qc_failure", "system_alert"]
    priority: Literal["high", "urgent"]
    tenant_id: str
    title: str
    message: str
    recipient_id: str
    recipient_type: str
    data: Dict[str, Any] = {}
    requires_acknowledgment: bool = False


# -------- Órdenes salientes (ORM^O01) --------


class OrderPatient(BaseModel):
    id: str
    assigning_authority: str = "MRN"
    family_name: str
    given_name: str = ""
    date_of_birth: str = ""  # YYYYMMDD
    sex: str = "U"


class OrderProvider(BaseModel):
    id: str
    family_name: str = ""
    given_name: str = ""


class OrderItem(BaseModel):
    order_id: str
    placer_id: Optional[str] = None
    code: str
    description: str
    coding_system: str = ""
    priority: str = "R"
    ordered_at: datetime
    collected_at: Optional[datetime] = None


class OrderPayload(BaseModel):
    patient: OrderPatient
    items: List[OrderItem]
    provider: Optional[OrderProvider] = None
    message_control_id: Optional[str] = None


# -------- Configuración --------


class TransportCfg(BaseModel):
    type: Literal["file", "tcp"]
    file: Dict[str, Any] = {}
    tcp: Dict[str, Any] = {}


class HL7Cfg(BaseModel):
    sending_application: str = "LABINTEROP"
    sending_facility: str = "LAB"
    receiving_application: str = "LIS"
    receiving_facility: str = "LIS"
    version: str = "2.5"


class QCCfg(BaseModel):
    window_size: int = Field(20, ge=1)
    affected_lookback_hours: int = Field(24, ge=1)
    supervisor_recipient: str = "lab_supervisor"
    director_recipient: str = "lab_director"


class Settings(BaseModel):
    app: Dict[str, Any] = {}
    paths: Dict[str, str]
    transport: Dict[str, TransportCfg]
    retry: Dict[str, Any] = {"attempts": 3, "backoff_sec": 2}
    hl7: HL7Cfg = HL7Cfg()
    qc: QCCfg = QCCfg()
    validation: Dict[str, Any] = {}
