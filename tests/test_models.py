import pytest

from compensi.domain.errors import ConfigurationError
from compensi.domain.models import (
    DoctorConfiguration,
    FixedRule,
    PercentageRule,
    ProductCost,
    TieredRule,
    TreatmentException,
    apply_rule_patch,
    exception_from_dict,
    exception_to_dict,
    product_cost_from_dict,
    rule_from_dict,
    rule_to_dict,
)


def test_rule_from_dict_camelcase():
    rule = rule_from_dict({"kind": "tiered", "thresholdX": 50, "thresholdY": "30", "base": "gross"})
    assert rule == TieredRule(threshold_x=50.0, threshold_y=30.0, base="gross")


def test_rule_from_dict_chiavi_legacy():
    rule = rule_from_dict({"tipo": "percentuale", "valore": "60", "su": "lordo", "detraiCosto": "si"})
    assert rule == PercentageRule(value=60.0, base="gross", deduct_product_cost=True)


def test_rule_from_dict_default():
    rule = rule_from_dict({"kind": "fixed", "thresholdX": 20})
    assert rule.base == "net"
    assert rule.deduct_product_cost is False
    assert rule.threshold_y is None


@pytest.mark.parametrize(
    "data",
    [
        {"kind": "bonus", "value": 10},
        {"value": 10},
        {"kind": "percentage", "value": 10, "base": "lordissimo"},
        {"kind": "percentage", "value": "dieci"},
    ],
)
def test_rule_from_dict_invalido(data):
    with pytest.raises(ConfigurationError):
        rule_from_dict(data)


def test_rule_to_dict_omette_campi_assenti():
    assert rule_to_dict(FixedRule(threshold_x=15)) == {
        "kind": "fixed",
        "base": "net",
        "deductProductCost": False,
        "thresholdX": 15,
    }


def test_apply_rule_patch_parziale():
    rule = PercentageRule(value=50, deduct_product_cost=True)
    patched = apply_rule_patch(rule, {"value": 70})
    assert patched == PercentageRule(value=70.0, deduct_product_cost=True)
    # la regola originale non cambia
    assert rule.value == 50


def test_apply_rule_patch_cambio_tipo():
    patched = apply_rule_patch(PercentageRule(value=50), {"kind": "fixed", "thresholdX": 20})
    assert patched == FixedRule(threshold_x=20.0)


def test_apply_rule_patch_none_e_regola_completa():
    rule = PercentageRule(value=50)
    assert apply_rule_patch(rule, None) is rule
    other = TieredRule(threshold_x=10, threshold_y=20)
    assert apply_rule_patch(rule, other) is other


def test_treatment_exception_normalizza():
    exc = TreatmentException(id=1, treatment="  Laser ", product="", rule=PercentageRule(value=10))
    assert exc.treatment == "Laser"
    assert exc.product is None
    assert exc.key == ("Laser", None)
    assert exc.label == "Laser"

    with pytest.raises(ConfigurationError):
        TreatmentException(id=2, treatment=" ", rule=PercentageRule(value=10))


def test_exception_dict_chiavi_legacy():
    exc = exception_from_dict(
        {"id": "7", "trattamento": "Peeling", "prodotto": "SerumX", "regola": {"tipo": "fisso", "valoreX": 15}}
    )
    assert exc.id == 7
    assert exc.label == "Peeling + SerumX"
    assert exception_to_dict(exc) == {
        "id": 7,
        "treatment": "Peeling",
        "product": "SerumX",
        "rule": {"kind": "fixed", "base": "net", "deductProductCost": False, "thresholdX": 15.0},
    }


def test_product_cost_zero_escluso_dalla_detrazione():
    pc = ProductCost(id=1, name="Garza", cost=0)
    assert pc.exclude_from_deduction is True
    assert not pc.deductible

    pc = ProductCost(id=2, name="Filler", cost=-5)
    assert pc.cost == 0.0
    assert pc.exclude_from_deduction is True

    pc = ProductCost(id=3, name="SerumX", cost=10, unit="fl")
    assert pc.deductible


def test_product_cost_nome_obbligatorio():
    with pytest.raises(ConfigurationError):
        ProductCost(id=1, name="  ", cost=10)


def test_product_cost_from_dict_legacy():
    pc = product_cost_from_dict({"nome": "Botox", "costo": "120.5", "unitaMisura": "fl", "nonDetrarre": "no"})
    assert pc.name == "Botox"
    assert pc.cost == 120.5
    assert pc.unit == "fl"
    assert pc.deductible


def test_doctor_configuration_from_dict_legacy_e_id():
    cfg = DoctorConfiguration.from_dict({
        "nome": "Dott.ssa Bianchi",
        "regolaBase": {"tipo": "percentuale", "valore": 40},
        "eccezioni": [{"trattamento": "Laser", "regola": {"tipo": "fisso", "valoreX": 30}}],
        "costiProdotti": [{"nome": "SerumX", "costo": 10}],
    })
    assert cfg.doctor_name == "Dott.ssa Bianchi"
    assert cfg.base_rule == PercentageRule(value=40.0)
    # senza id nel file: lo assegna il repository
    assert cfg.exceptions[0].id == 0
    assert cfg.product_costs[0].id == 0

    out = cfg.to_dict()
    assert out["name"] == "Dott.ssa Bianchi"
    assert out["baseRule"]["kind"] == "percentage"
    assert out["exceptions"][0]["treatment"] == "Laser"
    assert out["productCosts"][0]["name"] == "SerumX"


def test_doctor_configuration_senza_regola_base():
    with pytest.raises(ConfigurationError):
        DoctorConfiguration.from_dict({"exceptions": []})
