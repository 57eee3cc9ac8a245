import pytest

from compensi.domain.errors import (
    ConfigurationError,
    DuplicateExceptionError,
    InvalidRuleError,
    MergeConflictError,
    NotFoundError,
)
from compensi.domain.models import (
    DoctorConfiguration,
    FixedRule,
    PercentageRule,
    TieredRule,
    TreatmentException,
)
from compensi.infra.repositories import ExceptionRepository


def _repo():
    return ExceptionRepository([
        {"id": 1, "treatment": "Peeling", "rule": {"kind": "percentage", "value": 30}},
        {"id": 2, "treatment": "Peeling", "product": "SerumX", "rule": {"kind": "percentage", "value": 40}},
        {"id": 5, "treatment": "Laser", "rule": {"kind": "tiered", "thresholdX": 50, "thresholdY": 30}},
    ])


def test_costruzione_e_lettura():
    repo = _repo()
    assert len(repo) == 3
    assert repo.get_by_id(5).treatment == "Laser"
    assert repo.get_by_id(99) is None
    assert [e.id for e in repo.get_by_treatment("Peeling")] == [1, 2]
    assert repo.get_by_key("Peeling", "SerumX").id == 2
    assert repo.get_by_key("Peeling").id == 1


def test_costruzione_rifiuta_duplicati():
    with pytest.raises(DuplicateExceptionError):
        ExceptionRepository([
            {"treatment": "Laser", "rule": {"kind": "fixed", "thresholdX": 10}},
            {"treatment": "Laser", "product": "", "rule": {"kind": "fixed", "thresholdX": 20}},
        ])


def test_costruzione_assegna_id_mancanti():
    repo = ExceptionRepository([
        {"id": 3, "treatment": "Laser", "rule": {"kind": "fixed", "thresholdX": 10}},
        {"treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 20}},
    ])
    ids = [e.id for e in repo.get_all()]
    assert ids[0] == 3
    assert ids[1] not in (0, 3)


def test_find_applicable():
    repo = _repo()
    assert repo.find_applicable("Peeling", "SerumX").id == 2
    assert repo.find_applicable("Peeling", "Altro").id == 1
    assert repo.find_applicable("Botox") is None


def test_add_assegna_id_e_rifiuta_duplicati():
    repo = _repo()
    exc = repo.add({"treatment": "Botox", "rule": {"kind": "percentage", "value": 45}})
    assert exc.id == 6
    with pytest.raises(DuplicateExceptionError):
        repo.add({"treatment": "Botox", "rule": {"kind": "percentage", "value": 50}})
    assert len(repo) == 4


def test_add_rifiuta_regola_non_valida():
    repo = _repo()
    with pytest.raises(InvalidRuleError):
        repo.add({"treatment": "Botox", "rule": {"kind": "percentage", "value": 120}})
    assert repo.get_by_key("Botox") is None


def test_update_patch_parziale():
    repo = _repo()
    updated = repo.update(2, {"rule": {"value": 45}})
    assert updated.rule == PercentageRule(value=45.0)
    assert updated.product == "SerumX"

    # prodotto esplicitamente None -> eccezione generica, ma Peeling generica esiste già
    with pytest.raises(DuplicateExceptionError):
        repo.update(2, {"product": None})

    updated = repo.update(2, {"treatment": "Botox", "product": None})
    assert updated.key == ("Botox", None)


def test_update_non_valido_non_modifica():
    repo = _repo()
    before = repo.get_by_id(5)
    with pytest.raises(InvalidRuleError):
        repo.update(5, {"rule": {"thresholdY": 0}})
    assert repo.get_by_id(5) == before


def test_update_e_remove_id_sconosciuto():
    repo = _repo()
    with pytest.raises(NotFoundError):
        repo.update(42, {"rule": {"value": 10}})
    with pytest.raises(NotFoundError):
        repo.remove(42)


def test_remove_e_remove_all():
    repo = _repo()
    repo.remove(1)
    assert repo.get_by_id(1) is None
    assert len(repo) == 2
    repo.remove_all()
    assert len(repo) == 0


def test_merge_strategie():
    incoming = [
        TreatmentException(id=1, treatment="Peeling", rule=PercentageRule(value=35)),
        TreatmentException(id=2, treatment="Botox", rule=FixedRule(threshold_x=25)),
    ]

    repo = _repo()
    counts = repo.merge(incoming, strategy="replace")
    assert counts == {"added": 1, "replaced": 1, "skipped": 0}
    assert repo.get_by_key("Peeling").rule == PercentageRule(value=35)
    assert repo.get_by_key("Botox").id == 6

    repo = _repo()
    counts = repo.merge(incoming, strategy="skip")
    assert counts == {"added": 1, "replaced": 0, "skipped": 1}
    assert repo.get_by_key("Peeling").rule == PercentageRule(value=30.0)


def test_merge_error_non_applica_nulla():
    repo = _repo()
    before = repo.get_all()
    incoming = [
        {"treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 25}},
        {"treatment": "Peeling", "rule": {"kind": "percentage", "value": 35}},
    ]
    with pytest.raises(MergeConflictError):
        repo.merge(incoming, strategy="error")
    assert repo.get_all() == before
    # l'id successivo non è stato consumato
    assert repo.add({"treatment": "Filler", "rule": {"kind": "fixed", "thresholdX": 5}}).id == 6


def test_merge_strategia_sconosciuta():
    with pytest.raises(ValueError):
        _repo().merge([], strategy="overwrite")


def test_import_rinumera():
    repo = _repo()
    repo.import_([
        {"id": 10, "treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 25}},
        {"id": 20, "treatment": "Filler", "rule": {"kind": "fixed", "thresholdX": 30}},
    ])
    assert [e.id for e in repo.get_all()] == [1, 2]
    assert repo.add({"treatment": "Laser", "rule": {"kind": "fixed", "thresholdX": 5}}).id == 3

    with pytest.raises(DuplicateExceptionError):
        repo.import_([
            {"treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 25}},
            {"treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 30}},
        ])


def test_clone_indipendente():
    repo = _repo()
    copy = repo.clone()
    copy.remove(1)
    assert len(repo) == 3
    assert len(copy) == 2


def test_utilita():
    repo = _repo()
    assert list(repo.group_by_treatment()) == ["Peeling", "Laser"]
    assert repo.treatments_with_exceptions() == ["Peeling", "Laser"]
    assert repo.referenced_products() == ["SerumX"]
    assert repo.count_by_kind() == {"percentage": 2, "tiered": 1, "fixed": 0}
    assert isinstance(repo.get_by_id(5).rule, TieredRule)


def test_id_mancanti_dopo_il_massimo_del_file():
    cfg = DoctorConfiguration.from_dict({
        "baseRule": {"kind": "percentage", "value": 50},
        "exceptions": [
            {"id": 2, "treatment": "Laser", "rule": {"kind": "fixed", "thresholdX": 10}},
            {"treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 20}},
        ],
    })
    repo = ExceptionRepository(cfg.exceptions)
    assert [e.id for e in repo.get_all()] == [2, 3]

    repo.remove(2)
    assert [e.treatment for e in repo.get_all()] == ["Botox"]


def test_costruzione_rifiuta_id_duplicati():
    with pytest.raises(ConfigurationError):
        ExceptionRepository([
            {"id": 2, "treatment": "Laser", "rule": {"kind": "fixed", "thresholdX": 10}},
            {"id": 2, "treatment": "Botox", "rule": {"kind": "fixed", "thresholdX": 20}},
        ])


def test_export_import_export_equivalente():
    repo = ExceptionRepository([
        {"id": 1, "treatment": "Peeling", "rule": {"kind": "percentage", "value": 30}},
        {"id": 2, "treatment": "Peeling", "product": "SerumX", "rule": {"kind": "percentage", "value": 40}},
        {"id": 3, "treatment": "Laser", "rule": {"kind": "tiered", "thresholdX": 50, "thresholdY": 30}},
    ])
    exported = repo.export()

    other = ExceptionRepository()
    other.import_(exported)
    assert other.export() == exported


def test_add_remove_add_stessa_chiave():
    repo = _repo()
    exc = repo.add({"treatment": "Botox", "product": "SerumX", "rule": {"kind": "percentage", "value": 45}})
    repo.remove(exc.id)
    again = repo.add({"treatment": "Botox", "product": "SerumX", "rule": {"kind": "percentage", "value": 50}})
    assert again.key == ("Botox", "SerumX")
    assert repo.get_by_key("Botox", "SerumX").rule == PercentageRule(value=50.0)
