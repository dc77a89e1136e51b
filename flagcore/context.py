"""
This submodule implements the evaluation context model.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

from flagcore.value import type_of

_USER_STRING_ATTRS = {'ip', 'country', 'email', 'firstName', 'lastName', 'avatar', 'name'}


class Context:
    """
    A collection of attributes that can be referenced in flag evaluations and analytics events.

    Every context has a string ``key`` that identifies it for targeting and bucketing. The
    built-in attributes ``ip``, ``country``, ``email``, ``firstName``, ``lastName``,
    ``avatar``, ``name`` and ``anonymous`` have fixed types; any other attribute may hold any
    JSON-compatible value.

    To create a Context, use :func:`create()` when only the key is relevant, :func:`builder()`
    to set other attributes, or :func:`from_dict()` to convert an existing user dictionary.
    A Context is immutable once built.

    An invalid Context (for instance, one with an empty key) can still be passed to the
    client; evaluating a flag for it returns the default value with an error reason of
    ``USER_NOT_SPECIFIED``. Check :attr:`valid` and :attr:`error` to find out why.
    """

    def __init__(
        self,
        key: str,
        anonymous: bool = False,
        attributes: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """
        Constructs an instance. Applications should use :func:`create()` or :func:`builder()`.
        """
        if error is None and (not isinstance(key, str) or key == ''):
            error = 'context key must not be None or empty'
        self.__error = error
        if error is not None:
            self.__key = ''
            self.__anonymous = False
            self.__attributes = {}  # type: Dict[str, Any]
            return
        self.__key = key
        self.__anonymous = anonymous
        self.__attributes = attributes or {}

    @classmethod
    def create(cls, key: str) -> Context:
        """
        Creates a Context with only a key.

        :param key: the context key
        :return: a context
        """
        return Context(key)

    @classmethod
    def builder(cls, key: str) -> ContextBuilder:
        """
        Creates a builder for building a Context.

        :param key: the context key
        :return: a new builder
        """
        return ContextBuilder(key)

    @classmethod
    def builder_from_context(cls, context: Context) -> ContextBuilder:
        """
        Creates a builder whose properties are copied from an existing Context.
        """
        return ContextBuilder(context.key, context)

    @classmethod
    def from_dict(cls, props: dict) -> Context:
        """
        Creates a Context from a user dictionary.

        Top-level properties are treated as attributes. A ``custom`` property, if present,
        must be an object; its entries become attributes too. Built-in attributes with a
        value of the wrong type make the context invalid.

        :param props: the user properties
        :return: a context
        """
        if props is None:
            return Context('', error='Cannot use None as a context')
        if not isinstance(props, dict):
            return Context('', error='context properties must be a dictionary')
        key = props.get('key')
        if not isinstance(key, str):
            return Context.__create_with_schema_type_error('key')
        b = ContextBuilder(key)
        for k, v in props.items():
            if k == 'key' or k == 'privateAttributeNames':
                continue
            if k == 'custom':
                if v is None:
                    continue
                if not isinstance(v, dict):
                    return Context.__create_with_schema_type_error(k)
                for ck, cv in v.items():
                    if not b.try_set(ck, cv):
                        return Context.__create_with_schema_type_error(ck)
            elif not b.try_set(k, v):
                return Context.__create_with_schema_type_error(k)
        return b.build()

    @property
    def valid(self) -> bool:
        """
        True for a valid Context, or False for an invalid one.
        """
        return self.__error is None

    @property
    def error(self) -> Optional[str]:
        """
        Returns None for a valid Context, or an error message for an invalid one.
        """
        return self.__error

    @property
    def key(self) -> str:
        return self.__key

    @property
    def name(self) -> Optional[str]:
        return self.__attributes.get('name')

    @property
    def anonymous(self) -> bool:
        return self.__anonymous

    @property
    def custom_attributes(self) -> Iterable[str]:
        """
        Names of all attributes other than the key, including built-in ones that have been set.
        """
        return self.__attributes.keys()

    def get(self, attribute: str) -> Any:
        """
        Looks up the value of an attribute by name.

        ``key`` and ``anonymous`` always have a value. For any other attribute, the return value
        is None if it was never set; an attribute cannot hold None as a value.

        Context has a ``__getitem__`` method equivalent to ``get``.

        :param attribute: the attribute name
        :return: the attribute value, or None
        """
        if attribute == 'key':
            return self.__key
        if attribute == 'anonymous':
            return self.__anonymous
        return self.__attributes.get(attribute)

    def to_dict(self) -> Dict[str, Any]:
        if not self.valid:
            return {}
        ret = {'key': self.__key}  # type: Dict[str, Any]
        if self.__anonymous:
            ret['anonymous'] = True
        ret.update(self.__attributes)
        return ret

    def to_json_string(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'))

    def __getitem__(self, attribute) -> Any:
        return self.get(attribute) if isinstance(attribute, str) else None

    def __repr__(self) -> str:
        if not self.valid:
            return "[invalid context: %s]" % self.__error
        return self.to_json_string()

    def __eq__(self, other) -> bool:
        if not isinstance(other, Context):
            return False
        return (
            self.__key == other.__key
            and self.__anonymous == other.__anonymous
            and self.__attributes == other.__attributes
            and self.__error == other.__error
        )

    def __ne__(self, other) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return hash((self.__key, self.__error))

    @classmethod
    def __create_with_schema_type_error(cls, propname: str) -> Context:
        return Context('', error='invalid data type for "%s"' % propname)


class ContextBuilder:
    """
    A mutable object that uses the builder pattern to specify properties for :class:`Context`.

    Obtain an instance with :func:`Context.builder()`, call setter methods, then call
    :func:`build()`. A builder can be reused; each ``build()`` call returns a new Context.
    """

    def __init__(self, key: str, copy_from: Optional[Context] = None):
        self.__key = key
        if copy_from is None:
            self.__anonymous = False
            self.__attributes = {}  # type: Dict[str, Any]
        else:
            self.__anonymous = copy_from.anonymous
            self.__attributes = {k: copy_from.get(k) for k in copy_from.custom_attributes}

    def build(self) -> Context:
        """
        Creates a Context from the current builder properties.

        The result is always a Context; if the properties are invalid, it will have
        ``valid == False``.
        """
        return Context(self.__key, self.__anonymous, dict(self.__attributes))

    def key(self, key: str) -> ContextBuilder:
        self.__key = key
        return self

    def name(self, name: Optional[str]) -> ContextBuilder:
        self.try_set('name', name)
        return self

    def anonymous(self, anonymous: bool) -> ContextBuilder:
        """
        Sets whether the context is only intended for flag evaluations and should not be
        indexed for targeting.
        """
        self.__anonymous = anonymous
        return self

    def set(self, attribute: str, value: Any) -> ContextBuilder:
        """
        Sets the value of any attribute for the context.

        Values must be JSON-compatible: boolean, number, string, list or dict. The built-in
        attributes have restricted types, and a value of the wrong type is ignored:

        * ``"key"``: must be a string.
        * ``"anonymous"``: must be a boolean.
        * ``"ip"``, ``"country"``, ``"email"``, ``"firstName"``, ``"lastName"``, ``"avatar"``,
          ``"name"``: must be a string or None.

        Setting None removes the attribute.

        :param attribute: the attribute name to set
        :param value: the value to set
        :return: the builder
        """
        self.try_set(attribute, value)
        return self

    def try_set(self, attribute: str, value: Any) -> bool:
        """
        Same as :func:`set()`, but returns whether the attribute was set.
        """
        if not isinstance(attribute, str) or attribute == '':
            return False
        if attribute == 'key':
            if isinstance(value, str):
                self.__key = value
                return True
            return False
        if attribute == 'anonymous':
            if value is None:
                self.__anonymous = False
                return True
            if isinstance(value, bool):
                self.__anonymous = value
                return True
            return False
        if attribute in _USER_STRING_ATTRS and value is not None and not isinstance(value, str):
            return False
        if value is None:
            self.__attributes.pop(attribute, None)
            return True
        if type_of(value) is None:
            return False
        self.__attributes[attribute] = value
        return True


__all__ = ['Context', 'ContextBuilder']
