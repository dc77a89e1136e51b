import math

import pytest

from flagcore.context import Context
from flagcore.impl.evaluator import (_bucket_context,
                                     _variation_index_for_context)
from flagcore.impl.model import *
from flagcore.testing.builders import *
from flagcore.testing.impl.evaluator_util import *


class TestEvaluatorBucketing:
    def test_variation_index_is_returned_for_bucket(self):
        user = Context.create('userkey')
        flag = FlagBuilder('key').salt('salt').build()

        # First verify that with our test inputs, the bucket value will be greater than zero and less than 100000,
        # so we can construct a rollout whose second bucket just barely contains that value
        bucket_value = math.trunc(_bucket_context(None, user, flag.key, flag.salt, None) * 100000)
        assert bucket_value > 0 and bucket_value < 100000

        bad_variation_a = 0
        matched_variation = 1
        bad_variation_b = 2
        rule = VariationOrRollout(
            {
                'rollout': {
                    'variations': [
                        {'variation': bad_variation_a, 'weight': bucket_value},  # end of bucket range is not inclusive, so it will *not* match the target value
                        {'variation': matched_variation, 'weight': 1},  # size of this bucket is 1, so it only matches that specific value
                        {'variation': bad_variation_b, 'weight': 100000 - (bucket_value + 1)},
                    ]
                }
            }
        )
        result_variation = _variation_index_for_context(flag, rule, user)
        assert result_variation == (matched_variation, False)

    def test_last_bucket_is_used_if_bucket_value_equals_total_weight(self):
        user = Context.create('userkey')
        flag = FlagBuilder('key').salt('salt').build()

        # a list of variations that stops right at the target bucket value
        bucket_value = math.trunc(_bucket_context(None, user, flag.key, flag.salt, None) * 100000)

        rule = VariationOrRollout({'rollout': {'variations': [{'variation': 0, 'weight': bucket_value}]}})
        result_variation = _variation_index_for_context(flag, rule, user)
        assert result_variation == (0, False)

    def test_single_full_weight_bucket_always_wins(self):
        flag = FlagBuilder('key').salt('salt').build()
        rule = VariationOrRollout({'rollout': {'variations': [{'variation': 0, 'weight': 0}, {'variation': 1, 'weight': 100000}]}})
        for key in ('a', 'b', 'c', 'userKeyA', 'userKeyB'):
            assert _variation_index_for_context(flag, rule, Context.create(key)) == (1, False)

    def test_bucket_by_user_key(self):
        user = Context.create('userKeyA')
        bucket = _bucket_context(None, user, 'hashKey', 'saltyA', None)
        assert bucket == pytest.approx(0.42157587)

        user = Context.create('userKeyB')
        bucket = _bucket_context(None, user, 'hashKey', 'saltyA', None)
        assert bucket == pytest.approx(0.6708485)

        user = Context.create('userKeyC')
        bucket = _bucket_context(None, user, 'hashKey', 'saltyA', None)
        assert bucket == pytest.approx(0.10343106)

    def test_bucket_by_user_key_with_seed(self):
        seed = 61
        user = Context.create('userKeyA')
        point = _bucket_context(seed, user, 'hashKey', 'saltyA', None)
        assert point == pytest.approx(0.09801207)

        user = Context.create('userKeyB')
        point = _bucket_context(seed, user, 'hashKey', 'saltyA', None)
        assert point == pytest.approx(0.14483777)

        user = Context.create('userKeyC')
        point = _bucket_context(seed, user, 'hashKey', 'saltyA', None)
        assert point == pytest.approx(0.9242641)

    def test_bucket_by_int_attr(self):
        user = Context.builder('userKey').set('intAttr', 33333).set('stringAttr', '33333').build()
        bucket = _bucket_context(None, user, 'hashKey', 'saltyA', 'intAttr')
        assert bucket == pytest.approx(0.54771423)
        bucket2 = _bucket_context(None, user, 'hashKey', 'saltyA', 'stringAttr')
        assert bucket2 == bucket

    def test_bucket_by_float_attr_not_allowed(self):
        user = Context.builder('userKey').set('floatAttr', 33.5).build()
        bucket = _bucket_context(None, user, 'hashKey', 'saltyA', 'floatAttr')
        assert bucket == 0.0

    def test_bucket_by_missing_attr_is_zero(self):
        user = Context.create('userKey')
        assert _bucket_context(None, user, 'hashKey', 'saltyA', 'missing') == 0.0

    def test_seed_independent_of_salt_and_hashKey(self):
        seed = 61
        user = Context.create('userKeyA')
        point1 = _bucket_context(seed, user, 'hashKey', 'saltyA', None)
        point2 = _bucket_context(seed, user, 'hashKey', 'saltyB', None)
        point3 = _bucket_context(seed, user, 'hashKey2', 'saltyA', None)

        assert point1 == point2
        assert point2 == point3

    def test_seed_changes_hash_evaluation(self):
        seed1 = 61
        user = Context.create('userKeyA')
        point1 = _bucket_context(seed1, user, 'hashKey', 'saltyA', None)
        seed2 = 62
        point2 = _bucket_context(seed2, user, 'hashKey', 'saltyB', None)

        assert point1 != point2

    def test_rollout_selects_variation_by_bucket(self):
        user = Context.create('userKeyA')
        rollout = {'bucketBy': 'key', 'variations': [{'variation': 0, 'weight': 40000}, {'variation': 1, 'weight': 60000}]}
        flag = FlagBuilder('hashKey').on(True).salt('saltyA').variations('a', 'b').fallthrough_rollout(rollout).build()
        bucket = _bucket_context(None, user, 'hashKey', 'saltyA', 'key')
        expected = 0 if bucket < 0.4 else 1
        detail = basic_evaluator.evaluate(flag, user, event_factory).detail
        assert detail.variation_index == expected
        # 0.42157587 lands in the second bucket
        assert expected == 1

    def test_bucket_is_in_unit_interval(self):
        for i in range(50):
            bucket = _bucket_context(None, Context.create('key%d' % i), 'flag', 'salt', None)
            assert 0.0 <= bucket < 1.0
