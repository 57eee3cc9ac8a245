# compensi/config.py
"""
Configurazioni globali e valori predefiniti del motore compensi.
"""

import os
from dataclasses import dataclass


# Percorso predefinito della configurazione del medico (regola base, eccezioni, costi)
CONFIG_PATH = os.path.join(os.getcwd(), "medico.json")

# Catalogo prodotti di riferimento (nome -> unità di misura)
CATALOG_PATH = os.path.join(os.getcwd(), "catalogo_prodotti.xlsx")

# Directory dei log; se non impostata si usa `compensi/logs`
LOG_DIR = os.environ.get("COMPENSI_LOG_DIR")

ENABLE_LOGGING = os.environ.get("COMPENSI_ENABLE_LOGGING", "0").strip().lower() in {"1", "true", "yes", "si"}


@dataclass
class DefaultConfig:
    """Valori predefiniti del calcolo."""
    vat_rate: float = 0.22            # IVA fissa al 22%
    default_quantity: float = 1.0     # quantità prodotto se non indicata
    default_rule_base: str = "net"    # 'net' | 'gross'
    default_merge_strategy: str = "error"  # 'replace' | 'skip' | 'error'

    @property
    def vat_divisor(self) -> float:
        return 1.0 + self.vat_rate


# Istanza globale dei valori predefiniti
DEFAULTS = DefaultConfig()
