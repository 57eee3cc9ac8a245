# compensi/infra/repositories.py
"""
Repository in memoria della configurazione di un medico.

Classi:
- ExceptionRepository
- ProductCostRepository

Ogni istanza nasce da uno snapshot della configurazione persistita di un
solo medico, viene modificata e infine esportata con `export()`; il
salvataggio spetta al chiamante. Nessuno stato condiviso tra istanze.

Tutte le operazioni che falliscono lasciano il repository invariato.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from math import isclose
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from compensi.config import DEFAULTS
from compensi.domain.errors import (
    CompensiError,
    ConfigurationError,
    DuplicateExceptionError,
    DuplicateProductCostError,
    InvalidRuleError,
    MergeConflictError,
    NotFoundError,
)
from compensi.domain.models import (
    ProductCost,
    Rule,
    RULE_CLASSES,
    TreatmentException,
    apply_rule_patch,
    exception_from_dict,
    exception_key,
    product_cost_from_dict,
    rule_to_dict,
    first_value,
    normalize_str,
    to_bool,
    to_float,
)
from compensi.domain.policies import find_applicable_exception, find_by_key
from compensi.domain.validator import RuleValidator
from compensi.infra.logger import log_configurazione


MERGE_STRATEGIES = ("replace", "skip", "error")


# -------------------------
# Helpers
# -------------------------

def _next_id_from(ids: Iterable[int]) -> int:
    return max(list(ids) + [0]) + 1


def _as_exception(data: Union[Mapping[str, Any], TreatmentException], id: Optional[int] = None) -> TreatmentException:
    if isinstance(data, TreatmentException):
        return replace(data, id=id) if id is not None else data
    return exception_from_dict(data, id=id)


def _as_product_cost(data: Union[Mapping[str, Any], ProductCost], id: Optional[int] = None) -> ProductCost:
    if isinstance(data, ProductCost):
        return replace(data, id=id) if id is not None else data
    return product_cost_from_dict(data, id=id)


def _assign_missing_ids(items: List[Any]) -> Tuple[List[Any], int]:
    """Assegna un id a chi ne è privo (id <= 0) e restituisce il prossimo id libero."""
    next_id = _next_id_from(x.id for x in items)
    out = []
    for x in items:
        if x.id <= 0:
            x = replace(x, id=next_id)
            next_id += 1
        out.append(x)
    return out, next_id


def _check_unique_ids(items: Iterable[Any], entity: str) -> None:
    seen = set()
    for x in items:
        if x.id > 0 and x.id in seen:
            raise ConfigurationError(f"Duplicate {entity} id: {x.id}")
        seen.add(x.id)


def _find_exception_duplicates(items: Iterable[TreatmentException]) -> Optional[TreatmentException]:
    seen = set()
    for e in items:
        if e.key in seen:
            return e
        seen.add(e.key)
    return None


# -------------------------
# Eccezioni
# -------------------------

class ExceptionRepository:
    """Lista ordinata delle eccezioni di un medico, una per (trattamento, prodotto)."""

    def __init__(
        self,
        initial: Optional[Iterable[Union[Mapping[str, Any], TreatmentException]]] = None,
        validator: Optional[RuleValidator] = None,
    ):
        self.validator = validator or RuleValidator()
        items = [_as_exception(e) for e in (initial or [])]
        dup = _find_exception_duplicates(items)
        if dup is not None:
            raise DuplicateExceptionError(dup.treatment, dup.product)
        _check_unique_ids(items, "exception")
        self._items, self._next_id = _assign_missing_ids(items)

    # --------- lettura ---------

    def get_all(self) -> List[TreatmentException]:
        return list(self._items)

    def get_by_id(self, id: int) -> Optional[TreatmentException]:
        return next((e for e in self._items if e.id == id), None)

    def get_by_treatment(self, treatment: str) -> List[TreatmentException]:
        return [e for e in self._items if e.treatment == treatment]

    def get_by_key(self, treatment: str, product: Optional[str] = None) -> Optional[TreatmentException]:
        return find_by_key(self._items, treatment, product)

    def find_applicable(self, treatment: str, product: Optional[str] = None) -> Optional[TreatmentException]:
        """Eccezione più specifica per (trattamento, prodotto), o None se vale la regola base."""
        exc, _source = find_applicable_exception(self._items, treatment, product)
        return exc

    def __len__(self) -> int:
        return len(self._items)

    # --------- scrittura ---------

    def _index_of(self, id: int) -> int:
        for i, e in enumerate(self._items):
            if e.id == id:
                return i
        raise NotFoundError(f"Exception with id {id} not found")

    def _check_rule(self, rule: Rule, label: str) -> None:
        if not self.validator.is_valid(rule):
            raise InvalidRuleError(f'Invalid rule for exception "{label}": {rule_to_dict(rule)}', rule)

    def _insert(self, data: Union[Mapping[str, Any], TreatmentException]) -> TreatmentException:
        new = _as_exception(data, id=self._next_id)
        if self.get_by_key(new.treatment, new.product) is not None:
            raise DuplicateExceptionError(new.treatment, new.product)
        self._check_rule(new.rule, new.label)
        self._items.append(new)
        self._next_id += 1
        return new

    def add(self, data: Union[Mapping[str, Any], TreatmentException]) -> TreatmentException:
        """Aggiunge un'eccezione; l'id viene assegnato dal repository."""
        new = self._insert(data)
        log_configurazione("eccezione", "add", new.key, id=new.id, rule=rule_to_dict(new.rule))
        return new

    def update(self, id: int, patch: Mapping[str, Any]) -> TreatmentException:
        """Modifica trattamento, prodotto e/o (parzialmente) la regola.

        La regola risultante viene validata prima del salvataggio: una
        modifica che la rende non valida solleva `InvalidRuleError` e
        l'eccezione resta quella di prima.
        """
        updated = self._apply_patch(id, patch)
        log_configurazione("eccezione", "update", updated.key, id=id, rule=rule_to_dict(updated.rule))
        return updated

    def _apply_patch(self, id: int, patch: Mapping[str, Any]) -> TreatmentException:
        index = self._index_of(id)
        current = self._items[index]

        treatment = normalize_str(first_value(patch, "treatment", "trattamento")) or current.treatment
        if "product" in patch or "prodotto" in patch:
            product = normalize_str(patch.get("product", patch.get("prodotto")))
        else:
            product = current.product

        if exception_key(treatment, product) != current.key:
            other = self.get_by_key(treatment, product)
            if other is not None and other.id != id:
                raise DuplicateExceptionError(treatment, product)

        rule_patch = first_value(patch, "rule", "regola")
        rule = apply_rule_patch(current.rule, rule_patch)
        updated = TreatmentException(id=current.id, treatment=treatment, product=product, rule=rule)
        self._check_rule(updated.rule, updated.label)

        self._items[index] = updated
        return updated

    def remove(self, id: int) -> None:
        index = self._index_of(id)
        removed = self._items.pop(index)
        log_configurazione("eccezione", "remove", removed.key, id=id)

    def remove_all(self) -> None:
        self._items = []
        log_configurazione("eccezione", "remove_all")

    def merge(
        self,
        others: Iterable[Union[Mapping[str, Any], TreatmentException]],
        strategy: str = DEFAULTS.default_merge_strategy,
    ) -> Dict[str, int]:
        """Unisce eccezioni importate a quelle esistenti.

        Per ogni eccezione in ingresso che collide con una esistente:
        - ``replace``: sovrascrive la regola esistente;
        - ``skip``: ignora quella in ingresso;
        - ``error``: interrompe il merge con `MergeConflictError`.
        Le eccezioni senza collisione vengono aggiunte. In caso di errore
        nessuna modifica viene applicata né registrata nel log.

        Returns:
            Conteggio {"added", "replaced", "skipped"}.
        """
        if strategy not in MERGE_STRATEGIES:
            raise ValueError(f"Unknown merge strategy: {strategy}")

        saved = (list(self._items), self._next_id)
        counts = {"added": 0, "replaced": 0, "skipped": 0}
        try:
            for data in others:
                incoming = _as_exception(data)
                existing = self.get_by_key(incoming.treatment, incoming.product)
                if existing is None:
                    self._insert(incoming)
                    counts["added"] += 1
                elif strategy == "replace":
                    self._apply_patch(existing.id, {"rule": incoming.rule})
                    counts["replaced"] += 1
                elif strategy == "skip":
                    counts["skipped"] += 1
                else:
                    raise MergeConflictError(incoming.treatment, incoming.product)
        except CompensiError:
            self._items, self._next_id = saved
            raise
        log_configurazione("eccezione", "merge", strategy=strategy, **counts)
        return counts

    def import_(self, items: Iterable[Union[Mapping[str, Any], TreatmentException]]) -> None:
        """Sostituisce tutte le eccezioni; gli id vengono rinumerati da 1."""
        parsed = [_as_exception(e) for e in items]
        dup = _find_exception_duplicates(parsed)
        if dup is not None:
            raise DuplicateExceptionError(
                dup.treatment, dup.product, f"Duplicate found in import: {dup.label}"
            )
        self._items = [replace(e, id=i + 1) for i, e in enumerate(parsed)]
        self._next_id = len(self._items) + 1
        log_configurazione("eccezione", "import", rows=len(self._items))

    def export(self) -> List[TreatmentException]:
        return list(self._items)

    def clone(self) -> "ExceptionRepository":
        return ExceptionRepository(self._items, validator=self.validator)

    # --------- utilità ---------

    def group_by_treatment(self) -> Dict[str, List[TreatmentException]]:
        groups: Dict[str, List[TreatmentException]] = OrderedDict()
        for e in self._items:
            groups.setdefault(e.treatment, []).append(e)
        return groups

    def treatments_with_exceptions(self) -> List[str]:
        return list(self.group_by_treatment().keys())

    def referenced_products(self) -> List[str]:
        return list(OrderedDict.fromkeys(e.product for e in self._items if e.product))

    def count_by_kind(self) -> Dict[str, int]:
        counts = {kind: 0 for kind in RULE_CLASSES}
        for e in self._items:
            counts[e.rule.kind] += 1
        return counts


# -------------------------
# Costi prodotto
# -------------------------

@dataclass(frozen=True)
class CostChange:
    name: str
    old_cost: float
    new_cost: float


@dataclass(frozen=True)
class NewProduct:
    name: str
    cost: float
    unit: str


@dataclass
class ImportResult:
    """Esito di `prepare_import`: ogni riga finisce in al più un elenco."""
    modifications: List[CostChange] = field(default_factory=list)
    new_products: List[NewProduct] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.modifications or self.new_products or self.invalid)


def _as_import_row(row: Union[Mapping[str, Any], Tuple[Any, Any]]) -> Tuple[Optional[str], float]:
    if isinstance(row, Mapping):
        name = first_value(row, "name", "nome")
        cost = first_value(row, "cost", "costo")
    else:
        name, cost = row
    return normalize_str(name), max(0.0, to_float(cost, "cost") or 0.0)


class ProductCostRepository:
    """Lista ordinata dei costi prodotto di un medico, uno per nome."""

    def __init__(
        self,
        initial: Optional[Iterable[Union[Mapping[str, Any], ProductCost]]] = None,
        catalog: Optional[Mapping[str, str]] = None,
    ):
        items = [_as_product_cost(p) for p in (initial or [])]
        seen = set()
        for p in items:
            if p.name in seen:
                raise DuplicateProductCostError(p.name)
            seen.add(p.name)
        _check_unique_ids(items, "product cost")
        self._items, self._next_id = _assign_missing_ids(items)
        self._catalog: Dict[str, str] = dict(catalog or {})

    # --------- lettura ---------

    def get_all(self) -> List[ProductCost]:
        return list(self._items)

    def get_by_id(self, id: int) -> Optional[ProductCost]:
        return next((p for p in self._items if p.id == id), None)

    def get_by_name(self, name: str) -> Optional[ProductCost]:
        return next((p for p in self._items if p.name == name), None)

    def __len__(self) -> int:
        return len(self._items)

    # --------- scrittura ---------

    def _index_of(self, id: int) -> int:
        for i, p in enumerate(self._items):
            if p.id == id:
                return i
        raise NotFoundError(f"Product cost with id {id} not found")

    def add(self, data: Union[Mapping[str, Any], ProductCost]) -> ProductCost:
        """Aggiunge un costo; costo negativo -> 0, costo 0 -> escluso dalla detrazione."""
        new = _as_product_cost(data, id=self._next_id)
        if self.get_by_name(new.name) is not None:
            raise DuplicateProductCostError(new.name)
        self._items.append(new)
        self._next_id += 1
        log_configurazione("costo_prodotto", "add", new.name, id=new.id, cost=new.cost)
        return new

    def update(self, id: int, patch: Mapping[str, Any]) -> ProductCost:
        index = self._index_of(id)
        current = self._items[index]

        name = normalize_str(first_value(patch, "name", "nome")) or current.name
        if name != current.name and self.get_by_name(name) is not None:
            raise DuplicateProductCostError(name)

        raw_cost = first_value(patch, "cost", "costo")
        cost = max(0.0, to_float(raw_cost, "cost") or 0.0) if raw_cost is not None else current.cost
        unit = normalize_str(first_value(patch, "unit", "unitaMisura", "unita")) or current.unit

        raw_exclude = first_value(patch, "excludeFromDeduction", "exclude_from_deduction", "nonDetrarre")
        exclude = to_bool(raw_exclude) if raw_exclude is not None else current.exclude_from_deduction

        # ProductCost forza l'esclusione quando il costo è zero
        updated = ProductCost(id=current.id, name=name, cost=cost, unit=unit, exclude_from_deduction=exclude)
        self._items[index] = updated
        log_configurazione("costo_prodotto", "update", updated.name, id=id, cost=updated.cost,
                           exclude_from_deduction=updated.exclude_from_deduction)
        return updated

    def update_by_name(self, name: str, patch: Mapping[str, Any]) -> ProductCost:
        pc = self.get_by_name(name)
        if pc is None:
            raise NotFoundError(f'Product "{name}" not found')
        return self.update(pc.id, patch)

    def remove(self, id: int) -> None:
        index = self._index_of(id)
        removed = self._items.pop(index)
        log_configurazione("costo_prodotto", "remove", removed.name, id=id)

    def remove_by_name(self, name: str) -> None:
        """Rimuove il prodotto se presente; nessun effetto altrimenti."""
        pc = self.get_by_name(name)
        if pc is not None:
            self.remove(pc.id)

    def remove_all(self) -> None:
        self._items = []
        log_configurazione("costo_prodotto", "remove_all")

    # --------- import / export ---------

    def prepare_import(self, rows: Iterable[Union[Mapping[str, Any], Tuple[Any, Any]]]) -> ImportResult:
        """Confronta un foglio costi esterno con i costi attuali.

        Ogni riga (nome, costo) viene classificata come:
        - modifica: il prodotto esiste e il costo è diverso;
        - nuovo: il prodotto non esiste ma è nel catalogo di riferimento;
        - non valido: il prodotto non è né configurato né a catalogo.
        Le righe senza nome e quelle con costo invariato vengono scartate.
        Se lo stesso nome compare più volte vale l'ultima riga.
        """
        incoming: Dict[str, float] = OrderedDict()
        for row in rows:
            name, cost = _as_import_row(row)
            if not name:
                continue
            incoming[name] = cost

        result = ImportResult()
        for name, cost in incoming.items():
            current = self.get_by_name(name)
            if current is not None:
                if not isclose(current.cost, cost, rel_tol=0.0, abs_tol=1e-9):
                    result.modifications.append(CostChange(name=name, old_cost=current.cost, new_cost=cost))
            elif name in self._catalog:
                result.new_products.append(NewProduct(name=name, cost=cost, unit=self._catalog[name]))
            else:
                result.invalid.append(name)
        return result

    def confirm_import(self, result: ImportResult) -> None:
        """Applica prima le modifiche, poi i nuovi prodotti. Le righe non valide restano al chiamante."""
        saved = (list(self._items), self._next_id)
        try:
            for change in result.modifications:
                self.update_by_name(change.name, {"cost": change.new_cost})
            for new in result.new_products:
                self.add({"name": new.name, "cost": new.cost, "unit": new.unit})
        except CompensiError:
            self._items, self._next_id = saved
            raise
        log_configurazione(
            "costo_prodotto", "confirm_import",
            modifications=len(result.modifications), new_products=len(result.new_products),
        )

    def import_(self, items: Iterable[Union[Mapping[str, Any], ProductCost]]) -> None:
        """Sostituisce tutti i costi; gli id vengono rinumerati da 1."""
        parsed = [_as_product_cost(p) for p in items]
        seen = set()
        for p in parsed:
            if p.name in seen:
                raise DuplicateProductCostError(p.name, f"Duplicate found in import: {p.name}")
            seen.add(p.name)
        self._items = [replace(p, id=i + 1) for i, p in enumerate(parsed)]
        self._next_id = len(self._items) + 1
        log_configurazione("costo_prodotto", "import", rows=len(self._items))

    def export(self) -> List[ProductCost]:
        return list(self._items)

    def clone(self) -> "ProductCostRepository":
        return ProductCostRepository(self._items, catalog=self._catalog)

    # --------- catalogo ---------

    def set_catalog(self, catalog: Mapping[str, str]) -> None:
        self._catalog = dict(catalog)

    def catalog_products_not_added(self) -> Dict[str, str]:
        added = {p.name for p in self._items}
        return {name: unit for name, unit in self._catalog.items() if name not in added}

    # --------- utilità ---------

    def deductible_products(self) -> List[ProductCost]:
        return [p for p in self._items if p.cost > 0 and not p.exclude_from_deduction]

    def total_cost(self, items: Iterable[Tuple[str, float]]) -> Tuple[float, List[Dict[str, Any]]]:
        """Costo totale detraibile di un insieme di (prodotto, quantità), con dettaglio per riga."""
        total = 0.0
        details: List[Dict[str, Any]] = []
        for name, quantity in items:
            pc = self.get_by_name(name)
            if pc is None or pc.exclude_from_deduction:
                continue
            subtotal = pc.cost * float(quantity)
            details.append({"name": name, "cost": pc.cost, "quantity": float(quantity), "subtotal": subtotal})
            total += subtotal
        return total, details

    def price_coherence_warnings(self) -> List[Dict[str, str]]:
        warnings: List[Dict[str, str]] = []
        for p in self._items:
            if p.cost == 0 and not p.exclude_from_deduction:
                warnings.append({"product": p.name, "message": "Cost €0 but deduction active"})
            if p.cost > 0 and p.exclude_from_deduction:
                warnings.append({"product": p.name, "message": f"Cost €{p.cost:g} but deduction disabled"})
        return warnings

    def statistics(self) -> Dict[str, float]:
        costs = [p.cost for p in self._items if p.cost > 0]
        return {
            "total": len(self._items),
            "average": sum(costs) / len(costs) if costs else 0.0,
            "minimum": min(costs) if costs else 0.0,
            "maximum": max(costs) if costs else 0.0,
            "with_cost": len(costs),
            "without_cost": len(self._items) - len(costs),
        }
