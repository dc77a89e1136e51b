import json

import pytest

from flagcore.impl.model import *
from flagcore.versioned_data_kind import FEATURES, SEGMENTS


def test_flag_properties():
    data = {
        'key': 'f',
        'version': 3,
        'on': True,
        'variations': ['a', 'b'],
        'offVariation': 1,
        'fallthrough': {'rollout': {'kind': 'experiment', 'seed': 7, 'bucketBy': 'email', 'variations': [{'variation': 0, 'weight': 100000, 'untracked': True}]}},
        'prerequisites': [{'key': 'p', 'variation': 0}],
        'targets': [{'variation': 1, 'values': ['u1', 'u2']}],
        'rules': [{'id': 'r', 'clauses': [{'attribute': 'name', 'op': 'in', 'values': ['x'], 'negate': True}], 'variation': 0, 'trackEvents': True}],
        'salt': 'abc',
        'trackEvents': True,
        'trackEventsFallthrough': True,
        'debugEventsUntilDate': 1000,
        'clientSide': True,
    }
    flag = FeatureFlag(data)
    assert flag.key == 'f'
    assert flag.version == 3
    assert flag.on is True
    assert flag.variations == ['a', 'b']
    assert flag.off_variation == 1
    rollout = flag.fallthrough.rollout
    assert flag.fallthrough.variation is None
    assert rollout.is_experiment is True
    assert rollout.seed == 7
    assert rollout.bucket_by == 'email'
    assert rollout.variations[0].untracked is True
    assert flag.prerequisites[0].key == 'p'
    assert flag.targets[0].values == {'u1', 'u2'}
    assert flag.rules[0].id == 'r'
    assert flag.rules[0].track_events is True
    assert flag.rules[0].clauses[0].negate is True
    assert flag.rules[0].variation_or_rollout.variation == 0
    assert flag.salt == 'abc'
    assert flag.track_events is True
    assert flag.track_events_fallthrough is True
    assert flag.debug_events_until_date == 1000
    assert flag.client_side is True


def test_flag_defaults():
    flag = FeatureFlag({'key': 'f', 'version': 1})
    assert flag.on is False
    assert flag.variations == []
    assert flag.off_variation is None
    assert flag.prerequisites == []
    assert flag.targets == []
    assert flag.rules == []
    assert flag.salt == ''
    assert flag.client_side is False


def test_segment_properties():
    segment = Segment({
        'key': 's',
        'version': 2,
        'included': ['a'],
        'excluded': ['b'],
        'salt': 'x',
        'unbounded': True,
        'rules': [{'id': 'r', 'clauses': [], 'weight': 50000, 'bucketBy': 'email'}],
    })
    assert segment.key == 's'
    assert segment.version == 2
    assert segment.included == {'a'}
    assert segment.excluded == {'b'}
    assert segment.salt == 'x'
    assert segment.unbounded is True
    assert segment.rules[0].weight == 50000
    assert segment.rules[0].bucket_by == 'email'


@pytest.mark.parametrize(
    "data",
    [
        {'version': 1},
        {'key': 'f'},
        {'key': 3, 'version': 1},
        {'key': 'f', 'version': True},
        {'key': 'f', 'version': 1, 'on': 'yes'},
        {'key': 'f', 'version': 1, 'variations': 'a'},
        {'key': 'f', 'version': 1, 'rules': ['x']},
        {'key': 'f', 'version': 1, 'offVariation': 1.5},
        {'key': 'f', 'version': 1, 'fallthrough': {'rollout': {'variations': [{'variation': 0}]}}},
    ],
)
def test_flag_with_invalid_property_raises_value_error(data):
    with pytest.raises(ValueError):
        FeatureFlag(data)


def test_non_object_raises_value_error():
    with pytest.raises(ValueError):
        FeatureFlag(['a'])


def test_deleted_item_is_placeholder():
    flag = FeatureFlag({'key': 'f', 'version': 4, 'deleted': True})
    assert flag.deleted is True
    assert flag.version == 4


def test_decode_leaves_tombstones_as_dicts():
    tombstone = {'key': 'f', 'version': 4, 'deleted': True}
    assert FEATURES.decode(tombstone) is tombstone


def test_decode_is_idempotent():
    flag = FEATURES.decode({'key': 'f', 'version': 1})
    assert FEATURES.decode(flag) is flag


def test_serialize_then_deserialize_is_structurally_equal():
    data = {'key': 's', 'version': 2, 'included': ['a'], 'excluded': [], 'rules': [{'clauses': [{'attribute': 'key', 'op': 'in', 'values': ['a']}]}], 'salt': ''}
    segment = SEGMENTS.decode(data)
    encoded = json.dumps(SEGMENTS.encode(segment))
    assert SEGMENTS.decode(json.loads(encoded)) == segment


def test_dependency_keys():
    flag = {'key': 'f', 'version': 1, 'prerequisites': [{'key': 'a', 'variation': 0}, {'key': 'b', 'variation': 0}]}
    assert list(FEATURES.get_dependency_keys(flag)) == ['a', 'b']
    segment = {'key': 's', 'version': 1, 'rules': [{'clauses': [{'attribute': 'key', 'op': 'segmentMatch', 'values': ['t', 3]}]}]}
    assert list(SEGMENTS.get_dependency_keys(segment)) == ['t']
