import pytest

from rigcheck.builder import AttributeSchemaRegistry, CustomCheckRegistry, RuleEvaluator, RuleStore
from rigcheck.data import CatalogSnapshot
from rigcheck.errors import ConfigurationError
from rigcheck.schemas import Part, Severity


def _rule(snapshot, rule_id):
    return next(r for r in snapshot.rules if r.id == rule_id)


def _evaluator(snapshot, custom_checks=None):
    return RuleEvaluator(AttributeSchemaRegistry(snapshot), custom_checks)


def test_exact_match_socket_mismatch(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-socket")

    finding = evaluator.evaluate(rule, snapshot.part("cpu-7600"), snapshot.part("mb-b550m"))

    assert finding is not None
    assert finding.severity is Severity.ERROR
    assert finding.primary_label == "Processors"
    assert finding.secondary_label == "Motherboards"
    assert finding.part_ids == ["cpu-7600", "mb-b550m"]
    assert finding.rule_id == "rule-socket"
    assert "AM5 vs AM4" in finding.message
    assert finding.details == "Processor and motherboard sockets must match"


def test_exact_match_same_socket_passes(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-socket")

    assert evaluator.evaluate(rule, snapshot.part("cpu-7600"), snapshot.part("mb-b650")) is None


def test_exact_match_ignores_case_and_whitespace_and_reads_by_name(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-socket")
    cpu = Part(id="cpu-custom", category_id="cat-cpu", name="Custom", attributes={"Socket": " am5 "})

    assert evaluator.evaluate(rule, cpu, snapshot.part("mb-b650")) is None


def test_compatible_values_rejects_unlisted_connector(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-gpu-connector")

    finding = evaluator.evaluate(rule, snapshot.part("psu-750"), snapshot.part("gpu-3050"))

    assert finding is not None
    assert finding.primary_label == "Power Supplies"
    assert finding.secondary_label == "Graphics Cards"
    assert "(6-pin)" in finding.message
    assert finding.details == "Compatible values: 8-pin, 24-pin"


def test_compatible_values_accepts_listed_connector(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-gpu-connector")

    assert evaluator.evaluate(rule, snapshot.part("psu-750"), snapshot.part("gpu-4070s")) is None


def test_range_check_uses_the_gpu_requirement_as_floor(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-gpu-psu")
    gpu = snapshot.part("gpu-6600")
    psu_500 = Part(id="psu-500", category_id="cat-psu", name="500W", attributes={"wattage": "500W"})

    assert rule.min_value == 550
    assert evaluator.evaluate(rule, gpu, psu_500) is None

    finding = evaluator.evaluate(rule, gpu, snapshot.part("psu-450"))
    assert finding is not None
    assert finding.severity is Severity.ERROR
    assert finding.details == "Allowed range: min 500"


def test_range_check_falls_back_to_rule_floor(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-gpu-psu")
    gpu = Part(id="gpu-x", category_id="cat-gpu", name="Mystery GPU", attributes={"recommended_psu_power": "ask vendor"})

    finding = evaluator.evaluate(rule, gpu, snapshot.part("psu-450"))
    assert finding is not None
    assert finding.details == "Allowed range: min 550"
    assert evaluator.evaluate(rule, gpu, snapshot.part("psu-750")) is None


def test_range_check_applies_max_value(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-gpu-psu").model_copy(update={"max_value": 700.0})

    finding = evaluator.evaluate(rule, snapshot.part("gpu-6600"), snapshot.part("psu-750"))
    assert finding is not None
    assert finding.details == "Allowed range: min 500, max 700"


def test_range_check_skips_non_numeric_secondary(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-gpu-psu")
    psu = Part(id="psu-x", category_id="cat-psu", attributes={"wattage": "plenty"})

    assert evaluator.evaluate(rule, snapshot.part("gpu-6600"), psu) is None


def test_custom_form_factor_check(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-case-form-factor")

    finding = evaluator.evaluate(rule, snapshot.part("mb-b650"), snapshot.part("case-itx"))
    assert finding is not None
    assert "fail Case form factor" in finding.message
    assert finding.details == "The case must accept the motherboard form factor"

    assert evaluator.evaluate(rule, snapshot.part("mb-b650"), snapshot.part("case-atx")) is None


def test_custom_check_error_becomes_configuration_error(snapshot):
    checks = CustomCheckRegistry()

    @checks.register("broken")
    def broken(primary, secondary):
        raise KeyError(primary)

    rule = _rule(snapshot, "rule-gpu-length").model_copy(update={"custom_check_ref": "broken"})

    with pytest.raises(ConfigurationError) as excinfo:
        _evaluator(snapshot, checks).evaluate(rule, snapshot.part("gpu-3050"), snapshot.part("case-atx"))
    assert excinfo.value.rule_id == "rule-gpu-length"


def test_host_registered_custom_check(snapshot):
    checks = CustomCheckRegistry()

    @checks.register("never")
    def never(primary, secondary):
        return False

    rule = _rule(snapshot, "rule-gpu-length").model_copy(update={"custom_check_ref": "never"})
    finding = _evaluator(snapshot, checks).evaluate(rule, snapshot.part("gpu-3050"), snapshot.part("case-atx"))

    assert finding is not None
    assert "never" in checks


def test_missing_value_never_produces_a_finding(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-socket")
    blank = Part(id="cpu-blank", category_id="cat-cpu", attributes={"tpl-cpu-socket": "  "})
    bare = Part(id="cpu-bare", category_id="cat-cpu")

    assert evaluator.evaluate(rule, blank, snapshot.part("mb-b550m")) is None
    assert evaluator.evaluate(rule, bare, snapshot.part("mb-b550m")) is None


@pytest.mark.parametrize(
    "update",
    [
        {"compatible_values": ["AM5"]},
        {"min_value": 1.0},
        {"custom_check_ref": "fits_within"},
        {"primary_attribute_id": "tpl-cpu-tdp"},
        {"primary_attribute_id": "tpl-missing"},
        {"secondary_category_id": "cat-missing"},
        {"secondary_attribute_id": "tpl-cpu-socket"},
    ],
)
def test_misconfigured_exact_match_rule_is_rejected(snapshot, update):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-socket").model_copy(update=update)

    with pytest.raises(ConfigurationError):
        evaluator.evaluate(rule, snapshot.part("cpu-7600"), snapshot.part("mb-b550m"))


def test_rule_payload_must_match_its_type(snapshot):
    evaluator = _evaluator(snapshot)
    connector = _rule(snapshot, "rule-gpu-connector").model_copy(update={"compatible_values": []})
    unbounded = _rule(snapshot, "rule-gpu-psu").model_copy(update={"min_value": None})
    inverted = _rule(snapshot, "rule-gpu-psu").model_copy(update={"min_value": 800.0, "max_value": 600.0})
    unknown_hook = _rule(snapshot, "rule-gpu-length").model_copy(update={"custom_check_ref": "nope"})

    for rule in (connector, unbounded, inverted, unknown_hook):
        with pytest.raises(ConfigurationError):
            evaluator.check_rule(rule)


def test_enumerated_template_without_values_is_rejected(catalog_doc):
    for template in catalog_doc["templates"]:
        if template["id"] == "tpl-cpu-socket":
            template["enum_values"] = []
    snapshot = CatalogSnapshot.model_validate(catalog_doc)
    evaluator = _evaluator(snapshot)

    with pytest.raises(ConfigurationError) as excinfo:
        evaluator.evaluate(_rule(snapshot, "rule-socket"), snapshot.part("cpu-7600"), snapshot.part("mb-b650"))
    assert excinfo.value.template_id == "tpl-cpu-socket"


def test_rules_between_either_order(snapshot):
    store = RuleStore(snapshot.rules)

    forward = [r.id for r in store.rules_between("cat-gpu", "cat-psu")]
    backward = [r.id for r in store.rules_between("cat-psu", "cat-gpu")]

    assert forward == ["rule-gpu-connector", "rule-gpu-psu"]
    assert backward == forward
    assert store.rules_between("cat-cooling", "cat-cpu") == []
    assert len(store) == 6


def test_unreadable_length_is_not_a_clearance_failure(snapshot):
    evaluator = _evaluator(snapshot)
    rule = _rule(snapshot, "rule-gpu-length")
    gpu = Part(id="gpu-odd", category_id="cat-gpu", attributes={"length": "n/a"})

    assert evaluator.evaluate(rule, gpu, snapshot.part("case-itx")) is None
