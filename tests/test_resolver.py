from levelmerge.level.models import NS_MODEL, NS_RESOURCE, NS_SPLINE, Ref
from levelmerge.level.validator import validate
from levelmerge.merge.options import SpacePolicy
from levelmerge.merge.resolver import resolve
from level_helpers import instance, make_level, model, spline, texture


def test_duplicate_keeps_first_and_moves_second():
    first, second = model(7), model(7)
    level = make_level(models=[model(1), first, model(2), second])
    to_first = instance(1, None)
    to_first.model = Ref.to(NS_MODEL, first)
    to_second = instance(2, None)
    to_second.model = Ref.to(NS_MODEL, second)
    level.instances.append(to_first)
    level.instances.append(to_second)

    renumber = resolve(level, [NS_MODEL])

    assert first.id == 7
    assert second.id == 8
    assert to_first.model.id == 7
    assert to_second.model.id == 8
    assert renumber.pairs(NS_MODEL) == [(7, 8)]
    assert validate(level) == []


def test_every_reference_to_renumbered_entity_is_rewritten():
    winner, loser = texture(3, 1), texture(3, 2)
    level = make_level(models=[model(1)], resources=[winner, loser])
    refs = []
    for iid in range(4):
        inst = instance(iid, 1)
        ref = Ref.to(NS_RESOURCE, loser)
        inst.resources.append(ref)
        refs.append(ref)
        level.instances.append(inst)

    renumber = resolve(level, [NS_RESOURCE])

    new_id = loser.id
    assert new_id == 4
    assert all(r.id == new_id for r in refs)
    stale = [
        ref
        for _, ref in level.iter_references()
        if ref.follows(loser) and ref.id != new_id
    ]
    assert stale == []
    assert renumber.rewritten == 4


def test_raw_reference_stays_with_the_id_keeper():
    level = make_level(
        models=[model(1)],
        resources=[texture(3, 1), texture(3, 2)],
        instances=[instance(1, 1, resources=[3])],
    )
    resolve(level, [NS_RESOURCE])
    assert level.resources.ids() == [3, 4]
    assert level.instances[0].resources[0].id == 3


def test_three_way_duplicate_gets_distinct_ids():
    level = make_level(models=[model(5), model(5), model(5)])
    renumber = resolve(level, [NS_MODEL])
    assert level.models.ids() == [5, 6, 7]
    assert renumber.pairs(NS_MODEL) == [(5, 6), (5, 7)]


def test_spline_renumbering_uses_high_band():
    level = make_level(splines=[spline(3, 2, 2), spline(3, 2, 2)])
    resolve(level, [NS_SPLINE])
    assert level.splines.ids() == [3, 101]


def test_separate_spaces_ignore_cross_namespace_ids():
    level = make_level(
        models=[model(1), model(3)],
        resources=[texture(3, 1), texture(4, 2)],
        instances=[instance(1, 1, resources=[3])],
    )
    renumber = resolve(level)
    assert not renumber
    assert level.resources.ids() == [3, 4]


def test_shared_space_renumbers_lower_priority_namespace():
    level = make_level(
        models=[model(1), model(3)],
        resources=[texture(3, 1), texture(4, 2)],
        instances=[instance(1, 3, resources=[3, 4])],
    )
    renumber = resolve(
        level,
        policy=SpacePolicy.SHARED,
        shared_spaces=[(NS_MODEL, NS_RESOURCE)],
    )
    assert level.models.ids() == [1, 3]
    assert level.resources.ids() == [5, 4]
    assert renumber.pairs(NS_RESOURCE) == [(3, 5)]
    inst = level.instances[0]
    assert inst.model.id == 3
    assert [r.id for r in inst.resources] == [5, 4]


def test_shared_param_index_is_split_with_block_copy():
    level = make_level(
        models=[model(1)],
        instances=[
            instance(1, 1, params=0),
            instance(2, 1, params=0),
            instance(3, 1, params=1),
        ],
        params=[b"\xaa\xbb", b"\xcc"],
    )
    renumber = resolve(level)
    assert [i.params.id for i in level.instances] == [0, 2, 1]
    assert level.params.get(2) == b"\xaa\xbb"
    assert renumber.pairs("param-index") == [(0, 2)]
    assert validate(level) == []
