"""
Eccezioni del dominio compensi.

Gli errori "duri" interrompono sempre la modifica in corso: il repository
resta invariato. Le anomalie di configurazione non bloccanti non passano
di qui ma vengono restituite come `ValidationWarning` dal validatore.
"""

from __future__ import annotations

from typing import Optional


class CompensiError(Exception):
    """Base per tutti gli errori del motore compensi."""
    pass


class ConfigurationError(CompensiError, ValueError):
    """Dati di configurazione malformati (tipo regola sconosciuto, campi illeggibili...)."""
    pass


class InvalidRuleError(CompensiError, ValueError):
    """La regola non rispetta i vincoli del suo tipo e non ha una formula definita."""

    def __init__(self, message: str, rule: object = None):
        super().__init__(message)
        self.rule = rule


class DuplicateExceptionError(CompensiError):
    """Esiste già un'eccezione per la stessa coppia (trattamento, prodotto)."""

    def __init__(self, treatment: str, product: Optional[str] = None, message: Optional[str] = None):
        self.treatment = treatment
        self.product = product
        if message is None:
            label = f"{treatment} + {product}" if product else treatment
            message = f"Exception already exists for {label}"
        super().__init__(message)


class MergeConflictError(DuplicateExceptionError):
    """Collisione durante un merge con strategia 'error'."""

    def __init__(self, treatment: str, product: Optional[str] = None):
        label = f"{treatment} + {product}" if product else treatment
        super().__init__(treatment, product, f"Merge conflict: {label}")


class DuplicateProductCostError(CompensiError):
    """Esiste già un costo per lo stesso nome prodotto."""

    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        super().__init__(message or f'Product "{name}" already exists')


class NotFoundError(CompensiError, LookupError):
    """Id (o nome) inesistente."""
    pass
