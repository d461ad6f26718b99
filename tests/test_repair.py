import pytest

from levelmerge.level.validator import ViolationKind, validate
from levelmerge.merge.repair import fit_weights, repair
from level_helpers import instance, make_level, model, spline, texture


def test_fit_weights_extends_from_last_value():
    weights = fit_weights([0.0, 0.5, 1.0], 5)
    assert weights[:3] == [0.0, 0.5, 1.0]
    assert weights[3:] == pytest.approx([1.1, 1.2])


def test_fit_weights_truncates_and_starts_at_zero():
    assert fit_weights([1.0, 2.0, 3.0], 2) == [1.0, 2.0]
    assert fit_weights([], 3) == pytest.approx([0.0, 0.1, 0.2])


def test_curve_weights_extended_to_point_count():
    curve = spline(101, 10, 6)
    original = list(curve.weights)
    level = make_level(splines=[curve])
    violations = validate(level)
    assert [v.kind for v in violations] == [ViolationKind.SIZE_MISMATCH]

    result = repair(level, violations)

    assert result.repaired == 1
    assert len(curve.weights) == 10
    assert curve.weights[:6] == original
    step = [curve.weights[i + 1] - curve.weights[i] for i in range(5, 9)]
    assert step == pytest.approx([0.1] * 4)
    assert validate(level) == []


def test_dangling_nullable_reference_is_cleared():
    level = make_level(
        models=[model(1)],
        resources=[texture(0, 1)],
        instances=[instance(1, 1, resources=[0, 9], spline=150)],
    )
    result = repair(level, validate(level))
    inst = level.instances[0]
    assert [r.id for r in inst.resources] == [0, None]
    assert inst.spline.is_null
    assert result.repaired == 2
    assert result.unfixable == []
    assert validate(level) == []


def test_missing_model_is_not_repairable():
    level = make_level(instances=[instance(1, 42), instance(2, None)])
    result = repair(level, validate(level))
    assert len(result.unfixable) == 2
    assert level.instances[0].model.id == 42
    assert len(validate(level)) == 2


def test_duplicates_are_renumbered_by_repair():
    level = make_level(models=[model(4), model(4)])
    result = repair(level, validate(level))
    assert level.models.ids() == [4, 5]
    assert result.renumber.pairs("model") == [(4, 5)]
    assert validate(level) == []
