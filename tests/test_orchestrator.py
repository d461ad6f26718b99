import io
import json

import pytest

from levelmerge.level.models import NS_RESOURCE
from levelmerge.level.validator import validate
from levelmerge.merge.options import MergeOptions
from levelmerge.merge.orchestrator import MergeSession, MergeState, finalize
from levelmerge.logging import configure_logging
from levelmerge.reporting import JsonLinesReporter, SilentReporter, set_reporter
from level_helpers import instance, make_level, model, spline, texture


@pytest.fixture(autouse=True)
def _silent():
    set_reporter(SilentReporter())


def _scenario_levels():
    target = make_level(
        "target",
        models=[model(501)],
        resources=[texture(i, 10 + i) for i in range(9)],
        instances=[
            instance(1, 501, resources=[3]),
            instance(2, 501, resources=[3]),
        ],
    )
    donor = make_level(
        "donor",
        models=[model(501)],
        resources=[texture(3, 13), texture(4, 200)],
        instances=[instance(i, 501, resources=[3, 4]) for i in range(1, 6)],
    )
    return donor, target


def test_copy_missing_with_resource_mapping():
    donor, target = _scenario_levels()
    saved = []
    report = MergeSession(
        donor,
        target,
        MergeOptions(copy_missing=True, map_resources=True),
        saver=saved.append,
    ).run()

    assert report.success
    assert report.state == MergeState.DONE.name
    assert len(target.instances) == 5
    assert len(target.resources) == 10
    assert report.resource_map == {3: 3, 4: 9}
    assert report.resources_imported == 1
    assert report.resources_reused == 1
    assert report.copied == 3
    for inst in list(target.instances)[2:]:
        assert [r.id for r in inst.resources] == [3, 9]
    assert saved == [target]
    assert report.saved


def test_donor_level_is_not_mutated():
    donor, target = _scenario_levels()
    MergeSession(donor, target, MergeOptions()).run()
    assert len(donor.resources) == 2
    assert [r.id for r in donor.instances[4].resources] == [3, 4]


def test_copied_instances_colliding_ids_are_renumbered():
    donor, target = _scenario_levels()
    for inst in donor.instances:
        inst.id = 1
    report = MergeSession(donor, target, MergeOptions()).run()
    ids = target.instances.ids()
    assert len(ids) == len(set(ids)) == 5
    assert report.renumber_map["instance"]
    assert validate(target) == []


def test_reposition_existing_updates_paired_instances():
    donor, target = _scenario_levels()
    donor.instances[0].position = (4.0, 5.0, 6.0)
    report = MergeSession(
        donor,
        target,
        MergeOptions(reposition_existing=True, copy_missing=False),
    ).run()
    assert report.success
    assert report.repositioned == 2
    assert report.copied == 0
    assert target.instances[0].position == (4.0, 5.0, 6.0)
    assert len(target.instances) == 2


def test_import_models_remaps_textures():
    target = make_level(resources=[texture(0, 1)])
    donor = make_level(
        models=[model(700, textures=[2])],
        resources=[texture(2, 77)],
        instances=[instance(1, 700, resources=[2])],
    )
    report = MergeSession(
        donor, target, MergeOptions(import_models=True)
    ).run()
    assert report.success
    assert report.models_imported == 1
    imported = target.models.find(700)
    assert imported is not donor.models[0]
    assert imported.textures[0].texture.id == 1
    assert target.instances[0].resources[0].id == 1


def test_model_ids_option_limits_selection():
    target = make_level(models=[model(1), model(2)])
    donor = make_level(
        instances=[instance(10, 1), instance(11, 2), instance(12, 2)]
    )
    report = MergeSession(
        donor, target, MergeOptions(model_ids=[2], map_resources=False)
    ).run()
    assert report.copied == 2
    assert {i.model_id for i in target.instances} == {2}


def test_splines_and_params_are_copied():
    target = make_level(
        models=[model(1)],
        splines=[spline(101, 2, 2)],
        params=[b"t0"],
    )
    donor = make_level(
        splines=[spline(5, 4, 4)],
        params=[b"d0", b"d1"],
        instances=[instance(1, 1, spline=5, params=1)],
    )
    report = MergeSession(donor, target, MergeOptions()).run()
    assert report.success
    copied = target.instances[0]
    assert copied.spline.id == 102
    assert target.splines.find(102).vertex_count == 4
    assert copied.params.id == 1
    assert target.params.get(1) == b"d1"


def test_missing_model_is_skipped_and_counted():
    target = make_level(models=[model(1)])
    donor = make_level(instances=[instance(1, 1), instance(2, 99)])
    report = MergeSession(donor, target, MergeOptions()).run()
    assert report.success
    assert report.copied == 1
    assert report.skipped == 1
    assert any("E_MODEL_MISSING" in m for m in report.messages)


def test_all_skipped_is_not_success():
    target = make_level(models=[model(1)])
    donor = make_level(instances=[instance(1, 99)])
    report = MergeSession(donor, target, MergeOptions()).run()
    assert not report.success
    assert report.skipped == 1


def test_empty_resource_is_skipped():
    from levelmerge.level.models import Resource

    target = make_level(models=[model(1)])
    donor = make_level(
        resources=[Resource(id=0, width=4, height=4)],
        instances=[instance(1, 1, resources=[0])],
    )
    report = MergeSession(donor, target, MergeOptions()).run()
    assert report.skipped == 1
    assert report.copied == 1
    assert target.instances[0].resources[0].is_null


def test_absent_collection_is_fatal_and_target_untouched():
    donor, target = _scenario_levels()
    target.models = None
    saved = []
    report = MergeSession(donor, target, saver=saved.append).run()
    assert not report.success
    assert report.fatal["code"] == "E_FATAL"
    assert report.state == MergeState.FAILED.name
    assert len(target.instances) == 2
    assert len(target.resources) == 9
    assert saved == []


def test_empty_donor_is_fatal():
    _, target = _scenario_levels()
    report = MergeSession(make_level(), target).run()
    assert not report.success
    assert "no entities" in report.fatal["message"]


def test_unrepairable_violations_block_save():
    donor, target = _scenario_levels()
    target.instances.append(instance(50, 999))
    saved = []
    report = MergeSession(donor, target, saver=saved.append).run()
    assert not report.success
    assert report.state == MergeState.REVALIDATE.name
    assert report.remaining
    assert report.remaining[0]["code"] == "E_REF"
    assert saved == []


def test_repair_cycle_fixes_pre_existing_corruption():
    donor, target = _scenario_levels()
    target.instances[0].resources.append(
        target.instances[0].resources[0].detached()
    )
    target.instances[0].resources[1].id = 77
    target.splines.append(spline(101, 10, 6))
    report = MergeSession(donor, target).run()
    assert report.success
    assert len(report.violations) == 2
    assert report.remaining == []
    assert report.repaired == 2
    assert len(target.splines.find(101).weights) == 10


def test_no_repair_leaves_violations():
    donor, target = _scenario_levels()
    target.splines.append(spline(101, 3, 1))
    report = MergeSession(
        donor, target, MergeOptions(allow_repair=False)
    ).run()
    assert not report.success
    assert report.state == MergeState.VALIDATE.name
    assert len(report.remaining) == 1


def test_skip_validation_forces_save():
    stream = io.StringIO()
    configure_logging(0)
    set_reporter(JsonLinesReporter(stream))
    donor, target = _scenario_levels()
    target.instances.append(instance(50, 999))
    saved = []
    report = MergeSession(
        donor, target, MergeOptions(skip_validation=True), saver=saved.append
    ).run()
    assert report.validation_skipped
    assert report.saved
    assert saved == [target]
    assert report.violations == []
    events = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert any(
        e.get("level") == "warning" and "Validation skipped" in e["message"]
        for e in events
    )


def test_finalize_is_idempotent():
    donor, target = _scenario_levels()
    MergeSession(donor, target).run()
    first = finalize(target)
    second = finalize(target)
    assert first == second
    model_ids, instance_ids = first
    assert model_ids == [501]
    assert instance_ids == target.instances.ids()


def test_deduplicated_resources_resolve_after_merge():
    donor, target = _scenario_levels()
    MergeSession(donor, target).run()
    for owner, ref in target.iter_references():
        if ref.namespace == NS_RESOURCE and not ref.is_null:
            assert target.resources.find(ref.id) is not None


def test_copied_instance_binds_matched_resource_when_target_ids_collide():
    first, second = texture(3, 1), texture(3, 2)
    donor_res = texture(5, 2)
    target = make_level("target", models=[model(501)], resources=[first, second])
    donor = make_level(
        "donor",
        models=[model(501)],
        resources=[donor_res],
        instances=[instance(1, 501, resources=[5])],
    )
    report = MergeSession(donor, target).run()
    assert report.success
    assert report.renumber_map == {"resource": [[3, 4]]}
    assert second.id == 4
    copied = target.instances.find(1)
    ref = copied.resources[0]
    assert ref.id == 4
    assert target.resources.find(ref.id).data == donor_res.data
    assert report.resource_map == {5: 4}
    assert validate(target) == []
