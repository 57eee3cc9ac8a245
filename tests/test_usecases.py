import json
from math import isclose

import pandas as pd
import pytest

from compensi.domain.errors import ConfigurationError, InvalidRuleError, MergeConflictError
from compensi.domain.models import WARNING_MORE_GENEROUS, DoctorConfiguration
from compensi.infra.storage import load_configurazione, save_configurazione
from compensi.usecases.calcola_compenso import run_calcolo, run_scenari
from compensi.usecases.gestisci_eccezioni import (
    run_aggiungi_eccezione,
    run_merge_eccezioni,
    run_modifica_eccezione,
    run_rimuovi_eccezione,
)
from compensi.usecases.importa_costi import run_conferma_import_costi, run_prepara_import_costi
from compensi.usecases.valida_configurazione import run_validazione


def test_storage_roundtrip_e_json_invalido(tmp_path, config_file):
    cfg = load_configurazione(config_file)
    assert cfg.doctor_name == "Dott. Rossi"
    out = tmp_path / "copia" / "medico.json"
    save_configurazione(out, cfg)
    assert load_configurazione(out) == cfg
    assert not (tmp_path / "copia" / "medico.json.tmp").exists()

    bad = tmp_path / "rotto.json"
    bad.write_text("{baseRule:", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_configurazione(bad)


def test_run_calcolo(config_file):
    res = run_calcolo("Pulizia", 122, product="SerumX", quantity=2, config_path=str(config_file))
    assert isclose(res.net_compensation, 40.0, abs_tol=1e-9)

    res = run_calcolo("Laser", 200, vat_included=False, config_path=str(config_file))
    assert isclose(res.base_compensation, 95.0, abs_tol=1e-9)


def test_run_scenari(config_file):
    results = run_scenari("Botox", 100, [40, 60], vat_included=False, config_path=str(config_file))
    assert [round(s.result.base_compensation, 2) for s in results] == [40.0, 60.0]
    # l'eccezione di Laser prevale sulla regola base simulata
    results = run_scenari("Laser", 200, [40], vat_included=False, config_path=str(config_file))
    assert isclose(results[0].result.base_compensation, 95.0, abs_tol=1e-9)


def test_run_validazione(config_file):
    out = run_validazione(config_path=str(config_file))
    assert out["medico"] == "Dott. Rossi"
    assert out["regola_base_valida"] is True
    assert [w.kind for w in out["warnings"]] == [WARNING_MORE_GENEROUS]
    assert out["bloccante"] is False


def test_gestione_eccezioni_persistita(config_file):
    out = run_aggiungi_eccezione("Botox", {"kind": "fixed", "thresholdX": 25}, config_path=str(config_file))
    assert out["eccezione"].id == 4
    assert load_configurazione(config_file).exceptions[-1].treatment == "Botox"

    run_modifica_eccezione(4, {"rule": {"thresholdY": 15}}, config_path=str(config_file))
    assert load_configurazione(config_file).exceptions[-1].rule.threshold_y == 15.0

    run_rimuovi_eccezione(4, config_path=str(config_file))
    assert len(load_configurazione(config_file).exceptions) == 3


def test_aggiungi_eccezione_non_valida_non_salva(config_file):
    before = config_file.read_text(encoding="utf-8")
    with pytest.raises(InvalidRuleError):
        run_aggiungi_eccezione("Botox", {"kind": "percentage", "value": 130}, config_path=str(config_file))
    assert config_file.read_text(encoding="utf-8") == before


def test_merge_eccezioni(tmp_path, config_file):
    source = tmp_path / "altro.json"
    source.write_text(json.dumps({
        "baseRule": {"kind": "percentage", "value": 40},
        "exceptions": [
            {"treatment": "Laser", "rule": {"kind": "percentage", "value": 35}},
            {"treatment": "Filler", "rule": {"kind": "percentage", "value": 45}},
        ],
    }), encoding="utf-8")

    with pytest.raises(MergeConflictError):
        run_merge_eccezioni(str(source), strategy="error", config_path=str(config_file))
    assert len(load_configurazione(config_file).exceptions) == 3

    out = run_merge_eccezioni(str(source), strategy="replace", config_path=str(config_file))
    assert out["conteggio"] == {"added": 1, "replaced": 1, "skipped": 0}
    cfg = load_configurazione(config_file)
    assert cfg.exceptions[1].rule.kind == "percentage"


def test_import_costi(tmp_path, config_file):
    sheet = tmp_path / "costi.xlsx"
    pd.DataFrame({"Prodotto": ["SerumX", "Botox", "Misterioso"], "Costo": [12, 90, 5]}).to_excel(sheet, index=False)
    catalog = tmp_path / "catalogo.csv"
    catalog.write_text("nome,unita\nSerumX,fl\nBotox,fl\n", encoding="utf-8")

    preview = run_prepara_import_costi(str(sheet), str(catalog), config_path=str(config_file))
    assert preview["applicato"] is False
    assert [m.name for m in preview["risultato"].modifications] == ["SerumX"]
    assert [n.name for n in preview["risultato"].new_products] == ["Botox"]
    assert preview["risultato"].invalid == ["Misterioso"]
    assert DoctorConfiguration.from_dict(json.loads(config_file.read_text(encoding="utf-8"))).product_costs[0].cost == 10.0

    done = run_conferma_import_costi(str(sheet), str(catalog), config_path=str(config_file))
    assert done["applicato"] is True
    costs = {p.name: p for p in load_configurazione(config_file).product_costs}
    assert costs["SerumX"].cost == 12.0
    assert costs["Botox"].unit == "fl"
    assert "Misterioso" not in costs
