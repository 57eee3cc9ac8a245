# compensi/domain/models.py
"""
Modelli (dataclasses) del dominio compensi.

Osservazioni importanti:
- Le regole sono un'unione etichettata: un tipo di dataclass per ciascun
  genere di regola (percentuale, scaglioni, fisso), ognuna con i soli
  campi che la sua formula usa.
- Tutta la normalizzazione dei dati esterni (chiavi JSON, alias italiani
  legacy, valori predefiniti) avviene qui, nelle funzioni `*_from_dict`
  e nei `__post_init__`. Il resto del pacchetto assume record completi.
- I campi numerici delle regole restano `Optional`: una regola importata
  con valori mancanti deve poter essere rappresentata per essere segnalata
  dal validatore, mai usata nel calcolo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from compensi.config import DEFAULTS
from compensi.domain.errors import ConfigurationError


RULE_BASES = ("net", "gross")

RULE_PERCENTAGE = "percentage"
RULE_TIERED = "tiered"
RULE_FIXED = "fixed"

# Provenienza della regola applicata (dalla più specifica)
SOURCE_PRODUCT_EXCEPTION = "product-exception"
SOURCE_TREATMENT_EXCEPTION = "treatment-exception"
SOURCE_BASE_RULE = "base"

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"

WARNING_IDENTICAL = "identical"
WARNING_MORE_GENEROUS = "more-generous"
WARNING_CONFLICT = "conflict"
WARNING_MISSING_PRODUCT_COST = "missing-product-cost"
WARNING_ZERO_COST = "zero-cost"
WARNING_UNUSED_COST = "unused-cost"


# -------------------------
# Regole
# -------------------------

@dataclass(frozen=True)
class PercentageRule:
    """Compenso = `value`% dell'importo di base."""
    kind: ClassVar[str] = RULE_PERCENTAGE
    value: Optional[float] = None
    base: str = "net"                 # 'net' | 'gross'
    deduct_product_cost: bool = False


@dataclass(frozen=True)
class TieredRule:
    """Scaglioni: 100% fino a `threshold_x`, poi `threshold_y`% sull'eccedenza."""
    kind: ClassVar[str] = RULE_TIERED
    threshold_x: Optional[float] = None
    threshold_y: Optional[float] = None
    base: str = "net"
    deduct_product_cost: bool = False


@dataclass(frozen=True)
class FixedRule:
    """Importo fisso `threshold_x`, oppure il maggiore tra questo e `threshold_y`% dell'importo."""
    kind: ClassVar[str] = RULE_FIXED
    threshold_x: Optional[float] = None
    threshold_y: Optional[float] = None
    base: str = "net"
    deduct_product_cost: bool = False


Rule = Union[PercentageRule, TieredRule, FixedRule]

RULE_CLASSES: Dict[str, type] = {
    RULE_PERCENTAGE: PercentageRule,
    RULE_TIERED: TieredRule,
    RULE_FIXED: FixedRule,
}

_KIND_ALIASES = {
    "percentage": RULE_PERCENTAGE,
    "percentuale": RULE_PERCENTAGE,
    "tiered": RULE_TIERED,
    "scaglioni": RULE_TIERED,
    "fixed": RULE_FIXED,
    "fisso": RULE_FIXED,
}

_BASE_ALIASES = {
    "net": "net",
    "netto": "net",
    "gross": "gross",
    "lordo": "gross",
}

# chiave canonica -> chiavi accettate in ingresso (camelCase, snake_case, legacy)
_RULE_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "kind": ("kind", "tipo", "type"),
    "base": ("base", "su"),
    "deductProductCost": ("deductProductCost", "deduct_product_cost", "detraiCosto"),
    "value": ("value", "valore"),
    "thresholdX": ("thresholdX", "threshold_x", "valoreX"),
    "thresholdY": ("thresholdY", "threshold_y", "valoreY"),
}


# -------------------------
# Helpers di normalizzazione
# -------------------------

def normalize_str(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def to_float(val: Any, name: str) -> Optional[float]:
    if val is None:
        return None
    if isinstance(val, bool):
        raise ConfigurationError(f"{name}: boolean is not a number")
    if isinstance(val, str) and not val.strip():
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name}: not a number ({val!r})")


def to_bool(val: Any, default: bool = False) -> bool:
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    s = str(val).strip().lower()
    if s in {"1", "true", "t", "si", "sì", "s", "y", "yes"}:
        return True
    if s in {"0", "false", "f", "no", "n", ""}:
        return False
    raise ConfigurationError(f"Not a boolean: {val!r}")


def first_value(data: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return None


def _canonical_rule_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rinomina gli alias nelle chiavi canoniche, mantenendo i None espliciti."""
    out: Dict[str, Any] = {}
    for canon, aliases in _RULE_FIELD_ALIASES.items():
        for alias in aliases:
            if alias in data:
                out[canon] = data[alias]
                break
    return out


def exception_key(treatment: str, product: Optional[str] = None) -> Tuple[str, Optional[str]]:
    """Chiave di unicità di un'eccezione: l'assenza di prodotto è una chiave a sé."""
    return (normalize_str(treatment), normalize_str(product))


# -------------------------
# Regole: dict <-> dataclass
# -------------------------

def rule_from_dict(data: Union[Mapping[str, Any], Rule]) -> Rule:
    """Costruisce una regola a partire da dati in forma JSON.

    Accetta sia le chiavi camelCase (`kind`, `base`, `deductProductCost`,
    `value`, `thresholdX`, `thresholdY`) sia quelle legacy (`tipo`, `su`,
    `detraiCosto`, `valore`, `valoreX`, `valoreY`). `base` assume 'net'
    se assente, `deductProductCost` False.
    """
    if isinstance(data, tuple(RULE_CLASSES.values())):
        return data  # type: ignore[return-value]
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Rule must be a mapping, got {type(data).__name__}")

    d = _canonical_rule_fields(data)
    kind_raw = d.get("kind")
    kind = _KIND_ALIASES.get(str(kind_raw).strip().lower()) if kind_raw is not None else None
    if kind is None:
        raise ConfigurationError(f"Unknown rule kind: {kind_raw!r}")

    base_raw = d.get("base")
    if base_raw is None:
        base = DEFAULTS.default_rule_base
    else:
        base = _BASE_ALIASES.get(str(base_raw).strip().lower())
        if base is None:
            raise ConfigurationError(f"Unknown rule base: {base_raw!r}")

    deduct = to_bool(d.get("deductProductCost"), False)

    if kind == RULE_PERCENTAGE:
        return PercentageRule(
            value=to_float(d.get("value"), "value"),
            base=base,
            deduct_product_cost=deduct,
        )
    cls = RULE_CLASSES[kind]
    return cls(
        threshold_x=to_float(d.get("thresholdX"), "thresholdX"),
        threshold_y=to_float(d.get("thresholdY"), "thresholdY"),
        base=base,
        deduct_product_cost=deduct,
    )


def rule_to_dict(rule: Rule) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "kind": rule.kind,
        "base": rule.base,
        "deductProductCost": rule.deduct_product_cost,
    }
    if isinstance(rule, PercentageRule):
        if rule.value is not None:
            out["value"] = rule.value
    else:
        if rule.threshold_x is not None:
            out["thresholdX"] = rule.threshold_x
        if rule.threshold_y is not None:
            out["thresholdY"] = rule.threshold_y
    return out


def apply_rule_patch(rule: Rule, patch: Union[Mapping[str, Any], Rule, None]) -> Rule:
    """Applica una modifica parziale e restituisce una nuova regola.

    La regola originale non viene toccata; la validità del risultato va
    verificata dal chiamante prima di salvarla.
    """
    if patch is None:
        return rule
    if isinstance(patch, tuple(RULE_CLASSES.values())):
        return patch  # type: ignore[return-value]
    merged = rule_to_dict(rule)
    merged.update(_canonical_rule_fields(patch))
    return rule_from_dict(merged)


# -------------------------
# Eccezioni
# -------------------------

@dataclass(frozen=True)
class TreatmentException:
    """Regola che sostituisce quella base per un trattamento (ed eventualmente un prodotto)."""
    id: int
    treatment: str
    rule: Rule
    product: Optional[str] = None

    def __post_init__(self):
        treatment = normalize_str(self.treatment)
        if treatment is None:
            raise ConfigurationError("Exception treatment must not be empty")
        object.__setattr__(self, "treatment", treatment)
        object.__setattr__(self, "product", normalize_str(self.product))

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return exception_key(self.treatment, self.product)

    @property
    def label(self) -> str:
        return f"{self.treatment} + {self.product}" if self.product else self.treatment


def exception_from_dict(data: Union[Mapping[str, Any], TreatmentException], id: Optional[int] = None) -> TreatmentException:
    if isinstance(data, TreatmentException):
        return data
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Exception must be a mapping, got {type(data).__name__}")
    rule_data = first_value(data, "rule", "regola")
    if rule_data is None:
        raise ConfigurationError("Exception without rule")
    if id is None:
        raw_id = data.get("id")
        try:
            id = int(raw_id) if raw_id is not None else 0
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid exception id: {raw_id!r}")
    return TreatmentException(
        id=id,
        treatment=first_value(data, "treatment", "trattamento"),
        product=first_value(data, "product", "prodotto"),
        rule=rule_from_dict(rule_data),
    )


def exception_to_dict(exc: TreatmentException) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": exc.id, "treatment": exc.treatment}
    if exc.product:
        out["product"] = exc.product
    out["rule"] = rule_to_dict(exc.rule)
    return out


# -------------------------
# Costi prodotto
# -------------------------

@dataclass(frozen=True)
class ProductCost:
    """Costo detraibile di un prodotto (per unità)."""
    id: int
    name: str
    cost: float
    unit: str = ""
    exclude_from_deduction: bool = False

    def __post_init__(self):
        name = normalize_str(self.name)
        if name is None:
            raise ConfigurationError("Product name must not be empty")
        cost = max(0.0, float(self.cost or 0.0))
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "cost", cost)
        object.__setattr__(self, "unit", self.unit or "")
        # un costo zero non è detraibile
        object.__setattr__(self, "exclude_from_deduction", bool(self.exclude_from_deduction) or cost == 0)

    @property
    def deductible(self) -> bool:
        return not self.exclude_from_deduction


def product_cost_from_dict(data: Union[Mapping[str, Any], ProductCost], id: Optional[int] = None) -> ProductCost:
    if isinstance(data, ProductCost):
        return data
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Product cost must be a mapping, got {type(data).__name__}")
    if id is None:
        raw_id = data.get("id")
        try:
            id = int(raw_id) if raw_id is not None else 0
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid product cost id: {raw_id!r}")
    return ProductCost(
        id=id,
        name=first_value(data, "name", "nome"),
        cost=to_float(first_value(data, "cost", "costo"), "cost") or 0.0,
        unit=normalize_str(first_value(data, "unit", "unitaMisura", "unita")) or "",
        exclude_from_deduction=to_bool(
            first_value(data, "excludeFromDeduction", "exclude_from_deduction", "nonDetrarre"), False
        ),
    )


def product_cost_to_dict(pc: ProductCost) -> Dict[str, Any]:
    return {
        "id": pc.id,
        "name": pc.name,
        "cost": pc.cost,
        "unit": pc.unit,
        "excludeFromDeduction": pc.exclude_from_deduction,
    }


# -------------------------
# Calcolo
# -------------------------

@dataclass
class CalculationInput:
    """Una riga di fattura trattata, più la configurazione del medico."""
    invoice_amount: float
    treatment: str
    base_rule: Rule
    vat_included: bool = True
    product: Optional[str] = None
    quantity: Optional[float] = None   # None -> DEFAULTS.default_quantity
    exceptions: List[TreatmentException] = field(default_factory=list)
    product_costs: List[ProductCost] = field(default_factory=list)


@dataclass(frozen=True)
class CalculationResult:
    gross_amount: float
    net_amount: float
    base_compensation: float
    deducted_cost: float
    net_compensation: float
    rule_source: str                    # SOURCE_*
    rule_source_description: str
    formula_description: str
    explanation: str
    applied_rule: Rule
    cost_details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grossAmount": self.gross_amount,
            "netAmount": self.net_amount,
            "baseCompensation": self.base_compensation,
            "deductedCost": self.deducted_cost,
            "netCompensation": self.net_compensation,
            "ruleSource": self.rule_source,
            "ruleSourceDescription": self.rule_source_description,
            "formulaDescription": self.formula_description,
            "costDetails": self.cost_details,
            "explanation": self.explanation,
            "appliedRule": rule_to_dict(self.applied_rule),
        }


# -------------------------
# Validazione
# -------------------------

@dataclass
class ValidationWarning:
    """Segnalazione non bloccante prodotta dalla validazione di coerenza."""
    kind: str                           # WARNING_*
    message: str
    severity: str                       # 'info' | 'warning' | 'error'
    related_exception: Optional[TreatmentException] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity,
        }
        if self.related_exception is not None:
            out["relatedException"] = exception_to_dict(self.related_exception)
        if self.details:
            out["details"] = dict(self.details)
        return out


# -------------------------
# Configurazione del medico
# -------------------------

@dataclass
class DoctorConfiguration:
    """Terna persistita per un medico: regola base, eccezioni, costi prodotto."""
    base_rule: Rule
    exceptions: List[TreatmentException] = field(default_factory=list)
    product_costs: List[ProductCost] = field(default_factory=list)
    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DoctorConfiguration":
        if not isinstance(data, Mapping):
            raise ConfigurationError("Doctor configuration must be a mapping")
        base_data = first_value(data, "baseRule", "base_rule", "regolaBase")
        if base_data is None:
            raise ConfigurationError("Doctor configuration without base rule")
        # gli id mancanti restano 0: li assegnano i repository dopo il massimo presente
        exceptions = [exception_from_dict(e) for e in first_value(data, "exceptions", "eccezioni") or []]
        product_costs = [
            product_cost_from_dict(p)
            for p in first_value(data, "productCosts", "product_costs", "costiProdotti") or []
        ]
        doctor_id = first_value(data, "id", "doctorId")
        return cls(
            base_rule=rule_from_dict(base_data),
            exceptions=exceptions,
            product_costs=product_costs,
            doctor_id=str(doctor_id) if doctor_id is not None else None,
            doctor_name=normalize_str(first_value(data, "name", "nome", "doctorName")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.doctor_id is not None:
            out["id"] = self.doctor_id
        if self.doctor_name is not None:
            out["name"] = self.doctor_name
        out["baseRule"] = rule_to_dict(self.base_rule)
        out["exceptions"] = [exception_to_dict(e) for e in self.exceptions]
        out["productCosts"] = [product_cost_to_dict(p) for p in self.product_costs]
        return out
