# labinterop/services/qc_service.py
import math
import uuid
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from labinterop.commons.logger import logger, qc_logger
from labinterop.commons.types import (
    ControlTarget,
    Notification,
    PatientResult,
    QCCfg,
    QCEntry,
    QCResult,
)
from labinterop.qc.statistics import QCPeriod, QCStatistics, compute_statistics, period_bounds
from labinterop.qc.westgard import (
    AffectedResultsQuery,
    affected_results_query,
    evaluate,
    qc_severity,
)


class QCResultStore(Protocol):
    def window(
        self, tenant_id: str, test_id: str, control_level: str, lot: str, limit: int
    ) -> Sequence[float]:
        """Últimos `limit` valores previos, ordenados del más viejo al más nuevo."""

    def series(
        self,
        tenant_id: str,
        test_id: str,
        control_level: str,
        lot: str,
        start: datetime,
        end: datetime,
    ) -> Sequence[float]:
        ...


class PatientResultStore(Protocol):
    def find(self, tenant_id: str, query: AffectedResultsQuery) -> Sequence[PatientResult]:
        ...


class NotificationSink(Protocol):
    def send(self, notification: Notification) -> None:
        ...


def format_qc_failure_message(result: QCResult) -> str:
    z = f"{result.z_score:.2f}" if math.isfinite(result.z_score) else "N/A"
    lines = [
        f"QC failure detected for {result.test_name}",
        f"Control Level: {result.control_level}",
        f"Value: {result.value} (Mean: {result.mean}, SD: {result.sd})",
        f"Z-Score: {z}",
    ]
    if result.violations:
        lines.append(f"Violations: {', '.join(result.violations)}")
    if result.instrument_id:
        lines.append(f"Instrument: {result.instrument_id}")
    return "\n".join(lines)


class QCService:
    """Registra corridas de control, evalúa Westgard y escala fallas.

    Precondición: quien llama serializa los envíos por test+nivel+lote
    (la lectura de la ventana y la escritura del resultado no son atómicas aquí).
    """

    def __init__(
        self,
        results: QCResultStore,
        patient_results: PatientResultStore,
        sink: NotificationSink,
        cfg: Optional[QCCfg] = None,
    ):
        self.results = results
        self.patient_results = patient_results
        self.sink = sink
        self.cfg = cfg or QCCfg()

    def record(self, entry: QCEntry, target: ControlTarget) -> QCResult:
        prior = list(
            self.results.window(
                entry.tenant_id, entry.test_id, entry.control_level, entry.lot, self.cfg.window_size
            )
        )
        ev = evaluate(entry.value, target.mean, target.sd, prior)
        cv = target.sd / target.mean * 100 if target.mean else math.nan
        result = QCResult(
            id=uuid.uuid4().hex,
            tenant_id=entry.tenant_id,
            test_id=entry.test_id,
            test_name=entry.test_name,
            control_level=entry.control_level,
            lot=entry.lot,
            value=entry.value,
            mean=target.mean,
            sd=target.sd,
            cv=cv,
            z_score=ev.z_score,
            violations=list(ev.violations),
            accepted=ev.accepted,
            status=ev.status,
            is_outlier=abs(ev.z_score) > 4,
            instrument_id=entry.instrument_id,
            performed_by=entry.performed_by,
            performed_at=entry.performed_at,
        )
        qc_logger().info(
            f"QC {entry.test_id}/{entry.control_level}/{entry.lot} valor={entry.value} "
            f"z={ev.z_score:.2f} estado={result.status} reglas={list(ev.violations)}"
        )
        if result.accepted:
            return result
        return self.escalate(result)

    def escalate(self, result: QCResult) -> QCResult:
        severity = qc_severity(result.violations)
        critical = severity == "critical"
        self.sink.send(
            Notification(
                id=f"{result.id}_qc_failure",
                type="qc_failure",
                priority="urgent" if critical else "high",
                tenant_id=result.tenant_id,
                title="CRITICAL QC FAILURE" if critical else "QC Failure Alert",
                message=format_qc_failure_message(result),
                recipient_id=self.cfg.supervisor_recipient,
                recipient_type="lab_tech",
                data={
                    "qc_result_id": result.id,
                    "test_id": result.test_id,
                    "control_level": result.control_level,
                    "value": result.value,
                    "violations": list(result.violations),
                    "instrument_id": result.instrument_id,
                },
                requires_acknowledgment=critical,
            )
        )
        if critical:
            logger.warning(f"Falla crítica de QC en {result.test_name} ({result.test_id})")
            self.check_affected_results(result)
        return result.model_copy(update={"severity": severity, "notification_sent": True})

    def check_affected_results(self, result: QCResult) -> List[PatientResult]:
        query = affected_results_query(
            result.test_id, result.performed_at, self.cfg.affected_lookback_hours
        )
        affected = list(self.patient_results.find(result.tenant_id, query))
        if not affected:
            return affected
        logger.warning(f"{len(affected)} resultados de paciente posiblemente afectados")
        self.sink.send(
            Notification(
                id=f"{result.id}_affected_results",
                type="system_alert",
                priority="urgent",
                tenant_id=result.tenant_id,
                title="CRITICAL: Patient Results May Be Affected",
                message=(
                    f"Critical QC failure for {result.test_name} detected. "
                    f"{len(affected)} patient results from the last "
                    f"{self.cfg.affected_lookback_hours} hours may be affected. "
                    "Immediate review required."
                ),
                recipient_id=self.cfg.director_recipient,
                recipient_type="admin",
                data={
                    "qc_result_id": result.id,
                    "test_id": result.test_id,
                    "affected_result_count": len(affected),
                    "result_ids": [r.id for r in affected],
                },
                requires_acknowledgment=True,
            )
        )
        return affected

    def statistics(
        self,
        tenant_id: str,
        target: ControlTarget,
        period: QCPeriod,
        now: Optional[datetime] = None,
    ) -> QCStatistics:
        start, end = period_bounds(period, now)
        values = self.results.series(
            tenant_id, target.test_id, target.control_level, target.lot, start, end
        )
        return compute_statistics(
            values,
            target_mean=target.mean,
            target_sd=target.sd,
            target_cv=target.target_cv,
            period=QCPeriod(period),
        )
