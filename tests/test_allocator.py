from levelmerge.merge.allocator import IdAllocator, next_free_id, used_ids
from levelmerge.level.models import NS_PARAM, NS_RESOURCE, NS_SPLINE
from level_helpers import make_level, spline, texture


def test_next_free_id_skips_used():
    assert next_free_id({0, 1, 2, 4}, 0) == 3
    assert next_free_id({0, 1, 2, 4}, 4) == 5
    assert next_free_id(set(), 7) == 7


def test_allocator_never_repeats_an_id():
    level = make_level(resources=[texture(0, 1), texture(1, 2)])
    alloc = IdAllocator(level)
    first = alloc.allocate(NS_RESOURCE, start_hint=0)
    second = alloc.allocate(NS_RESOURCE, start_hint=0)
    assert first == 2
    assert second == 3


def test_allocator_defaults_past_highest_used():
    level = make_level(resources=[texture(3, 1), texture(9, 2)])
    alloc = IdAllocator(level)
    assert alloc.allocate(NS_RESOURCE) == 10


def test_spline_ids_allocate_above_high_band():
    level = make_level(splines=[spline(1, 2, 2), spline(2, 2, 2)])
    alloc = IdAllocator(level)
    assert alloc.allocate(NS_SPLINE) == 101
    assert alloc.allocate(NS_SPLINE) == 102
    assert alloc.allocate(NS_SPLINE, start_hint=5) == 103


def test_param_indices_keep_holes_reserved():
    level = make_level(params=[b"a", None, b"c"])
    assert used_ids(level, NS_PARAM) == {0, 1, 2}
    assert IdAllocator(level).allocate(NS_PARAM, start_hint=0) == 3


def test_reserve_blocks_allocation():
    level = make_level()
    alloc = IdAllocator(level)
    alloc.reserve(NS_RESOURCE, [0, 1])
    alloc.reserve(NS_RESOURCE, 2)
    assert alloc.allocate(NS_RESOURCE, start_hint=0) == 3
