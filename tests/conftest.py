import json
import os
import tempfile
from pathlib import Path

import pytest

# i log dei test vanno in una cartella temporanea (letta all'import di compensi.config)
os.environ.setdefault("COMPENSI_LOG_DIR", tempfile.mkdtemp(prefix="compensi-logs-"))


@pytest.fixture
def medico_data():
    """Configurazione tipo: 50% sul netto, tre eccezioni, due costi prodotto."""
    return {
        "id": "M001",
        "name": "Dott. Rossi",
        "baseRule": {"kind": "percentage", "value": 50, "base": "net", "deductProductCost": False},
        "exceptions": [
            {
                "id": 1,
                "treatment": "Pulizia",
                "product": "SerumX",
                "rule": {"kind": "percentage", "value": 60, "base": "net", "deductProductCost": True},
            },
            {
                "id": 2,
                "treatment": "Laser",
                "rule": {"kind": "tiered", "thresholdX": 50, "thresholdY": 30, "base": "net"},
            },
            {
                "id": 3,
                "treatment": "Visita",
                "rule": {"kind": "fixed", "thresholdX": 20, "thresholdY": 10, "base": "net"},
            },
        ],
        "productCosts": [
            {"id": 1, "name": "SerumX", "cost": 10, "unit": "fl"},
            {"id": 2, "name": "Garza", "cost": 0, "unit": "pz"},
        ],
    }


@pytest.fixture
def config_file(tmp_path: Path, medico_data) -> Path:
    p = tmp_path / "medico.json"
    p.write_text(json.dumps(medico_data), encoding="utf-8")
    return p
