"""
Sistema di logging per le operazioni sui compensi.

Questo modulo configura e fornisce i logger che registrano i calcoli,
le modifiche alla configurazione dei medici (eccezioni e costi prodotto)
e le importazioni da file.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from compensi import config


# Flag globale per abilitare/disabilitare il logging
ENABLE_LOGGING = config.ENABLE_LOGGING
# Flag globale per abilitare/disabilitare le stampe a console
ENABLE_OUTPUT = False

def print_system(*args, **kwargs):
    """Print controllato da ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)

# Configurazione base dei logger
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configura un logger con file di output dedicato.

    Args:
        name: Nome del logger
        log_file: Percorso del file di log
        level: Livello di logging (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logger configurato
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Rimuove gli handler esistenti (reimport del modulo)
    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    # Il file viene creato solo alla prima scrittura
    file_handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    file_handler.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    file_handler.setFormatter(formatter)

    logger.addHandler(file_handler)

    return logger

# Directory base dei log (nella cartella del pacchetto, salvo COMPENSI_LOG_DIR)
BASE_DIR = Path(__file__).parent.parent
LOGS_DIR = Path(config.LOG_DIR) if config.LOG_DIR else BASE_DIR / "logs"

LOG_FILES = {
    "calcoli": LOGS_DIR / "calcoli.log",
    "configurazione": LOGS_DIR / "configurazione.log",
    "import": LOGS_DIR / "import.log",
    "system": LOGS_DIR / "system.log",
}

# Logger specifici per ciascuna area
calcoli_logger = setup_logger('compensi.calcoli', str(LOG_FILES["calcoli"]))

configurazione_logger = setup_logger('compensi.configurazione', str(LOG_FILES["configurazione"]))

import_logger = setup_logger('compensi.import', str(LOG_FILES["import"]))

system_logger = setup_logger('compensi.system', str(LOG_FILES["system"]))

def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Registra una transazione completa (caso d'uso) nel log di sistema.

    Args:
        operation: Tipo di operazione (calcolo, import_costi, merge_eccezioni...)
        data: Dati della transazione
        result: Risultato dell'operazione (opzionale)
        error: Messaggio di errore (opzionale)
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    if error:
        system_logger.error(f"TRANSACTION_FAILED: {operation} - {error} - Data: {data}")
    else:
        system_logger.info(f"TRANSACTION_SUCCESS: {operation} - Result: {result} - Data: {data}")

def log_calcolo(treatment: str, product: Optional[str], rule_source: str, net_compensation: float, **kwargs) -> None:
    """
    Log specifico di un calcolo compenso.

    Args:
        treatment: Trattamento della riga fattura
        product: Prodotto (opzionale)
        rule_source: Provenienza della regola applicata
        net_compensation: Compenso netto risultante
        **kwargs: Dati aggiuntivi
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "treatment": treatment,
        "product": product,
        "rule_source": rule_source,
        "net_compensation": round(net_compensation, 2),
        **kwargs
    }
    calcoli_logger.info(f"CALCOLO: {log_data}")
    if net_compensation < 0:
        calcoli_logger.warning(f"COMPENSO_NEGATIVO: {log_data}")

def log_configurazione(entity: str, action: str, key: Any = None, **kwargs) -> None:
    """
    Log delle modifiche alla configurazione di un medico.

    Args:
        entity: Entità modificata (eccezione, costo_prodotto)
        action: Azione (add, update, remove, import, merge)
        key: Chiave dell'entità (id, nome o coppia trattamento/prodotto)
        **kwargs: Dati aggiuntivi
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "entity": entity,
        "action": action,
        "key": key,
        **kwargs
    }
    configurazione_logger.info(f"{entity.upper()}_{action.upper()}: {log_data}")

def log_system_event(event: str, details: Dict[str, Any] = None, level: str = "info") -> None:
    """
    Log degli eventi di sistema.

    Args:
        event: Descrizione dell'evento
        details: Dettagli aggiuntivi (opzionale)
        level: Livello del log (info, warning, error)
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "event": event,
        "details": details or {}
    }
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")

def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """
    Log delle operazioni su file (lettura fogli costi, catalogo, configurazione).

    Args:
        operation: Tipo di operazione (import, export, load, save)
        file_path: Percorso del file
        rows_processed: Numero di righe elaborate
        **kwargs: Dati aggiuntivi
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "operation": operation,
        "file_path": file_path,
        "rows_processed": rows_processed,
        "timestamp": datetime.now().isoformat(),
        **kwargs
    }
    import_logger.info(f"FILE_{operation.upper()}: {log_data}")

def get_log_summary(log_type: str = "calcoli", lines: int = 100) -> Optional[str]:
    """
    Restituisce le righe più recenti di un log.

    Args:
        log_type: Tipo di log (calcoli, configurazione, import, system)
        lines: Numero di righe da restituire

    Returns:
        Contenuto del log come stringa
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return None

    log_file = LOG_FILES.get(log_type)
    if not log_file or not log_file.exists():
        return f"Log {log_type} non trovato."

    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            all_lines = f.readlines()
            recent_lines = all_lines[-lines:] if len(all_lines) > lines else all_lines
            return ''.join(recent_lines)
    except OSError as e:
        return f"Errore nella lettura del log {log_type}: {str(e)}"
