import logging

import pytest

from compensi.domain.calculator import CompensationCalculator
from compensi.domain.errors import MergeConflictError
from compensi.domain.models import CalculationInput, PercentageRule
from compensi.infra import logger as log
from compensi.infra.repositories import ExceptionRepository


def test_logging_disabilitato_non_scrive(monkeypatch, caplog):
    monkeypatch.setattr(log, "ENABLE_LOGGING", False)
    monkeypatch.setattr(log, "ENABLE_OUTPUT", False)
    with caplog.at_level(logging.INFO):
        log.log_system_event("test_event")
    assert caplog.records == []
    assert log.get_log_summary("system") is None


def test_log_calcolo_compenso_negativo(monkeypatch, caplog):
    monkeypatch.setattr(log, "ENABLE_LOGGING", True)
    calc = CompensationCalculator()
    with caplog.at_level(logging.INFO, logger="compensi.calcoli"):
        calc.calculate(CalculationInput(
            invoice_amount=10, vat_included=False, treatment="Botox", base_rule=PercentageRule(value=50),
        ))
    messages = [r.getMessage() for r in caplog.records if r.name == "compensi.calcoli"]
    assert any(m.startswith("CALCOLO:") for m in messages)
    assert not any("COMPENSO_NEGATIVO" in m for m in messages)

    caplog.clear()
    log.log_calcolo("Botox", "SerumX", "base", -5.0)
    assert any(r.levelno == logging.WARNING and "COMPENSO_NEGATIVO" in r.getMessage() for r in caplog.records)


def test_log_configurazione_da_repository(monkeypatch, caplog):
    monkeypatch.setattr(log, "ENABLE_LOGGING", True)
    repo = ExceptionRepository()
    with caplog.at_level(logging.INFO, logger="compensi.configurazione"):
        repo.add({"treatment": "Laser", "rule": {"kind": "fixed", "thresholdX": 20}})
    assert any("ECCEZIONE_ADD" in r.getMessage() for r in caplog.records)


def test_log_transaction_errore(monkeypatch, caplog):
    monkeypatch.setattr(log, "ENABLE_LOGGING", True)
    with caplog.at_level(logging.INFO, logger="compensi.system"):
        log.log_transaction("calcolo", {"treatment": "Laser"}, error="boom")
    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert "TRANSACTION_FAILED: calcolo - boom" in record.getMessage()


def test_merge_annullato_non_lascia_traccia(monkeypatch, caplog):
    monkeypatch.setattr(log, "ENABLE_LOGGING", True)
    repo = ExceptionRepository([{"id": 1, "treatment": "Peeling", "rule": {"kind": "percentage", "value": 30}}])
    incoming = [
        {"treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 25}},
        {"treatment": "Peeling", "rule": {"kind": "percentage", "value": 35}},
    ]
    with caplog.at_level(logging.INFO, logger="compensi.configurazione"):
        with pytest.raises(MergeConflictError):
            repo.merge(incoming, strategy="error")
    assert caplog.records == []

    with caplog.at_level(logging.INFO, logger="compensi.configurazione"):
        repo.merge(incoming, strategy="replace")
    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 1
    assert messages[0].startswith("ECCEZIONE_MERGE:")
