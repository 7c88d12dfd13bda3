# flake8: noqa
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from labinterop.commons.types import ControlTarget, PatientResult, QCCfg, QCEntry, QCResult
from labinterop.qc.statistics import QCPeriod
from labinterop.services.qc_service import QCService, format_qc_failure_message

NOW = datetime(2025, 8, 17, 14, 0)
TARGET = ControlTarget(test_id="GLU", control_level="normal", lot="L1", mean=100, sd=10, target_cv=20)


class FakeResults:
    def __init__(self, window=None, series=None):
        self._window = window or []
        self._series = series or []
        self.calls = []

    def window(self, tenant_id, test_id, control_level, lot, limit):
        self.calls.append(("window", tenant_id, test_id, control_level, lot, limit))
        return self._window[-limit:]

    def series(self, tenant_id, test_id, control_level, lot, start, end):
        self.calls.append(("series", start, end))
        return self._series


class FakePatients:
    def __init__(self, results=None):
        self.results = results or []
        self.queries = []

    def find(self, tenant_id, query):
        self.queries.append(query)
        return self.results


class FakeSink:
    def __init__(self):
        self.sent = []

    def send(self, notification):
        self.sent.append(notification)


def entry(value):
    return QCEntry(
        tenant_id="t1",
        test_id="GLU",
        test_name="Glucose",
        control_level="normal",
        lot="L1",
        value=value,
        performed_by="tech1",
        performed_at=NOW,
        instrument_id="ICON-3",
    )


def make_service(window=None, patients=None, series=None):
    results = FakeResults(window, series)
    pats = FakePatients(patients)
    sink = FakeSink()
    return QCService(results, pats, sink, QCCfg(window_size=20)), results, pats, sink


def test_accepted_result_no_notification():
    svc, results, _, sink = make_service(window=[99, 101])
    res = svc.record(entry(102), TARGET)
    assert res.accepted is True
    assert res.status == "accepted"
    assert res.z_score == pytest.approx(0.2)
    assert res.cv == 10
    assert res.notification_sent is False
    assert res.severity is None
    assert sink.sent == []
    assert results.calls[0] == ("window", "t1", "GLU", "normal", "L1", 20)


def test_warning_notifies_supervisor():
    svc, _, pats, sink = make_service()
    res = svc.record(entry(125), TARGET)
    assert res.status == "warning"
    assert res.severity == "warning"
    assert res.notification_sent is True
    assert len(sink.sent) == 1
    n = sink.sent[0]
    assert n.id == f"{res.id}_qc_failure"
    assert n.type == "qc_failure"
    assert n.priority == "high"
    assert n.recipient_id == "lab_supervisor"
    assert n.requires_acknowledgment is False
    # no es crítica: no se buscan resultados de pacientes
    assert pats.queries == []


def test_critical_failure_checks_patient_results():
    affected = [
        PatientResult(id="r1", tenant_id="t1", test_id="GLU", status="validated"),
        PatientResult(id="r2", tenant_id="t1", test_id="GLU", status="released"),
    ]
    svc, _, pats, sink = make_service(patients=affected)
    res = svc.record(entry(135), TARGET)
    assert res.status == "rejected"
    assert res.severity == "critical"
    assert [n.type for n in sink.sent] == ["qc_failure", "system_alert"]
    alert = sink.sent[1]
    assert alert.id == f"{res.id}_affected_results"
    assert alert.recipient_id == "lab_director"
    assert alert.data["result_ids"] == ["r1", "r2"]
    assert sink.sent[0].priority == "urgent"
    q = pats.queries[0]
    assert q.since == NOW - timedelta(hours=24)
    assert q.until == NOW


def test_critical_without_affected_results_sends_one():
    svc, _, pats, sink = make_service(patients=[])
    svc.record(entry(135), TARGET)
    assert len(pats.queries) == 1
    assert len(sink.sent) == 1


def test_outlier_flag():
    svc, _, _, _ = make_service()
    assert svc.record(entry(150), TARGET).is_outlier is True
    assert svc.record(entry(135), TARGET).is_outlier is False


def test_failure_message_text():
    svc, _, _, sink = make_service()
    svc.record(entry(135), TARGET)
    msg = sink.sent[0].message
    assert "QC failure detected for Glucose" in msg
    assert "Z-Score: 3.50" in msg
    assert "Violations: 1_2s, 1_3s" in msg
    assert "Instrument: ICON-3" in msg


def test_failure_message_handles_infinite_z():
    res = QCResult(
        tenant_id="t1",
        test_id="GLU",
        test_name="Glucose",
        control_level="low",
        lot="L1",
        value=6,
        mean=5,
        sd=0,
        cv=0,
        z_score=float("inf"),
        accepted=False,
        status="rejected",
        performed_by="tech1",
        performed_at=NOW,
    )
    assert "Z-Score: N/A" in format_qc_failure_message(res)


def test_records_are_strict():
    with pytest.raises(ValidationError):
        QCEntry(
            tenant_id="t1",
            test_id="GLU",
            test_name="Glucose",
            control_level="normal",
            lot="L1",
            value=1,
            performed_by="x",
            performed_at=NOW,
            unexpected="boom",
        )
    with pytest.raises(ValidationError):
        ControlTarget(test_id="GLU", control_level="extreme", lot="L1", mean=1, sd=1)


def test_statistics_over_period():
    svc, results, _, _ = make_service(series=[95, 100, 105])
    st = svc.statistics("t1", TARGET, QCPeriod.WEEKLY, now=NOW)
    assert st.n == 3
    assert st.mean == 100
    assert st.bias == 0
    assert st.period == QCPeriod.WEEKLY
    assert st.sigma == pytest.approx(20 / st.cv)
    assert results.calls[-1] == ("series", NOW - timedelta(days=7), NOW)
