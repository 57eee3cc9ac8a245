"""
Politiche di risoluzione della regola applicabile.

Questo modulo contiene l'unica definizione della priorità tra eccezioni:
la usano sia il calcolatore sia il repository delle eccezioni, così che
l'editor e il calcolo non possano divergere.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from compensi.domain.models import (
    SOURCE_BASE_RULE,
    SOURCE_PRODUCT_EXCEPTION,
    SOURCE_TREATMENT_EXCEPTION,
    Rule,
    TreatmentException,
    exception_key,
)


def find_by_key(
    exceptions: Iterable[TreatmentException],
    treatment: str,
    product: Optional[str] = None,
) -> Optional[TreatmentException]:
    """Restituisce l'eccezione con chiave esattamente (trattamento, prodotto).

    Con ``product`` assente cerca l'eccezione generica del trattamento.
    """
    key = exception_key(treatment, product)
    for exc in exceptions:
        if exc.key == key:
            return exc
    return None


def find_applicable_exception(
    exceptions: Iterable[TreatmentException],
    treatment: str,
    product: Optional[str] = None,
) -> Tuple[Optional[TreatmentException], str]:
    """Trova l'eccezione più specifica per un trattamento.

    Priorità:
        1. eccezione (trattamento, prodotto), solo se il prodotto è indicato;
        2. eccezione generica (trattamento, nessun prodotto);
        3. nessuna: si applica la regola base.

    Returns:
        Una tupla ``(eccezione, provenienza)`` dove la provenienza è una
        delle costanti ``SOURCE_*``; l'eccezione è ``None`` per la regola base.
    """
    exceptions = list(exceptions)
    if exception_key(treatment, product)[1] is not None:
        specific = find_by_key(exceptions, treatment, product)
        if specific is not None:
            return specific, SOURCE_PRODUCT_EXCEPTION
    generic = find_by_key(exceptions, treatment)
    if generic is not None:
        return generic, SOURCE_TREATMENT_EXCEPTION
    return None, SOURCE_BASE_RULE


def resolve_rule(
    base_rule: Rule,
    exceptions: Iterable[TreatmentException],
    treatment: str,
    product: Optional[str] = None,
) -> Tuple[Rule, str, str]:
    """Risolve la regola da applicare e ne descrive la provenienza.

    Returns:
        ``(regola, provenienza, descrizione)``, ad esempio
        ``(rule, 'product-exception', 'Exception "Peeling + SerumX"')``.
    """
    exc, source = find_applicable_exception(exceptions, treatment, product)
    if exc is None:
        return base_rule, source, "Base rule"
    if source == SOURCE_PRODUCT_EXCEPTION:
        return exc.rule, source, f'Exception "{exc.treatment} + {exc.product}"'
    return exc.rule, source, f'Exception "{exc.treatment}" (all products)'
