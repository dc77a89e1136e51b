import json

import pytest

from flagcore.context import Context


def assert_context_valid(c):
    assert c.valid is True
    assert c.error is None


def assert_context_invalid(c):
    assert c.valid is False
    assert c.error is not None


class TestContext:
    def test_create(self):
        c = Context.create('a')
        assert_context_valid(c)
        assert c.key == 'a'
        assert c.name is None
        assert c.anonymous is False
        assert list(c.custom_attributes) == []

    def test_builder(self):
        c = Context.builder('a').build()
        assert_context_valid(c)
        assert c.key == 'a'
        assert c.anonymous is False

    def test_name(self):
        c = Context.builder('a').name('b').build()
        assert_context_valid(c)
        assert c.name == 'b'
        assert list(c.custom_attributes) == ['name']

    def test_anonymous(self):
        c = Context.builder('a').anonymous(True).build()
        assert_context_valid(c)
        assert c.anonymous is True
        assert c.get('anonymous') is True

    def test_custom_attributes(self):
        c = Context.builder('a').set('b', True).set('c', 'd').build()
        assert_context_valid(c)
        assert c.get('b') is True
        assert c.get('c') == 'd'
        assert c['c'] == 'd'
        assert sorted(c.custom_attributes) == ['b', 'c']

    def test_set_none_removes_attribute(self):
        c = Context.builder('a').set('b', 1).set('b', None).build()
        assert c.get('b') is None
        assert list(c.custom_attributes) == []

    def test_set_built_in_attribute_with_wrong_type_is_ignored(self):
        b = Context.builder('a')
        assert b.try_set('email', 3) is False
        assert b.try_set('anonymous', 'yes') is False
        assert b.try_set('key', None) is False
        assert b.build().get('email') is None

    def test_set_key_attribute(self):
        c = Context.builder('a').set('key', 'b').build()
        assert c.key == 'b'

    def test_get_unknown_attribute(self):
        c = Context.create('a')
        assert c.get('nope') is None
        assert c[3] is None

    @pytest.mark.parametrize("key", ['', None, 3])
    def test_invalid_key(self, key):
        c = Context.create(key)
        assert_context_invalid(c)
        assert c.key == ''

    def test_builder_from_context(self):
        c1 = Context.builder('a').name('b').set('c', [1]).anonymous(True).build()
        c2 = Context.builder_from_context(c1).set('d', 2).build()
        assert c2.key == 'a'
        assert c2.name == 'b'
        assert c2.get('c') == [1]
        assert c2.anonymous is True
        assert c2.get('d') == 2
        assert c1.get('d') is None

    def test_equality(self):
        assert Context.builder('a').set('b', 1).build() == Context.builder('a').set('b', 1).build()
        assert Context.builder('a').set('b', 1).build() != Context.builder('a').set('b', 2).build()
        assert Context.create('a') != Context.create('b')
        assert Context.create('a') != 'a'

    def test_to_dict_and_json(self):
        c = Context.builder('a').name('b').anonymous(True).build()
        assert c.to_dict() == {'key': 'a', 'name': 'b', 'anonymous': True}
        assert json.loads(c.to_json_string()) == {'key': 'a', 'name': 'b', 'anonymous': True}

    def test_invalid_context_to_dict_is_empty(self):
        assert Context.create('').to_dict() == {}


class TestContextFromDict:
    def test_basic_user(self):
        c = Context.from_dict({'key': 'a', 'name': 'b', 'email': 'c@d'})
        assert_context_valid(c)
        assert c.key == 'a'
        assert c.name == 'b'
        assert c.get('email') == 'c@d'

    def test_custom_attributes_are_flattened(self):
        c = Context.from_dict({'key': 'a', 'custom': {'x': 1, 'y': [2]}})
        assert_context_valid(c)
        assert c.get('x') == 1
        assert c.get('y') == [2]
        assert c.get('custom') is None

    def test_private_attribute_names_are_ignored(self):
        c = Context.from_dict({'key': 'a', 'privateAttributeNames': ['name']})
        assert_context_valid(c)
        assert c.get('privateAttributeNames') is None

    def test_none(self):
        assert_context_invalid(Context.from_dict(None))

    def test_not_a_dict(self):
        assert_context_invalid(Context.from_dict(['a']))

    def test_missing_key(self):
        assert_context_invalid(Context.from_dict({'name': 'b'}))

    def test_wrong_type_for_built_in_attribute(self):
        c = Context.from_dict({'key': 'a', 'email': 3})
        assert_context_invalid(c)
        assert 'email' in c.error

    def test_custom_must_be_object(self):
        assert_context_invalid(Context.from_dict({'key': 'a', 'custom': 'x'}))
