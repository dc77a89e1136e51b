import json
from typing import Any, List, Optional, Union

# Top-level model classes (FeatureFlag, Segment) subclass ModelEntity: each is decoded
# from the dict that corresponds to its JSON representation, and ModelEntity keeps that
# dict so the item can be re-serialized or inspected without re-encoding.
#
# Nested classes such as Clause only exist inside their enclosing entity and are not
# ModelEntity subclasses.
#
# The opt_ and req_ helpers reject JSON values of the wrong type at decode time, so a
# malformed item is discarded before it can reach the evaluator.


def _type_error(name: str, expected, value) -> ValueError:
    return ValueError('error in flag/segment data: property "%s" should be type %s but was %s' % (name, expected, value.__class__))


def opt_type(data: dict, name: str, desired_type) -> Any:
    value = data.get(name)
    if value is None:
        return None
    # bool is a subclass of int; JSON true is never an integer property
    if isinstance(value, bool) and desired_type is not bool:
        raise _type_error(name, desired_type, value)
    if not isinstance(value, desired_type):
        raise _type_error(name, desired_type, value)
    return value


def opt_bool(data: dict, name: str) -> bool:
    return opt_type(data, name, bool) is True


def opt_dict(data: dict, name: str) -> Optional[dict]:
    return opt_type(data, name, dict)


def opt_dict_list(data: dict, name: str) -> list:
    return validate_list_type(opt_list(data, name), name, dict)


def opt_int(data: dict, name: str) -> Optional[int]:
    return opt_type(data, name, int)


def opt_number(data: dict, name: str) -> Optional[Union[int, float]]:
    return opt_type(data, name, (int, float))


def opt_list(data: dict, name: str) -> list:
    return opt_type(data, name, list) or []


def opt_str(data: dict, name: str) -> Optional[str]:
    return opt_type(data, name, str)


def opt_str_list(data: dict, name: str) -> List[str]:
    return validate_list_type(opt_list(data, name), name, str)


def req_type(data: dict, name: str, desired_type) -> Any:
    value = opt_type(data, name, desired_type)
    if value is None:
        raise ValueError('error in flag/segment data: required property "%s" is missing' % name)
    return value


def req_dict_list(data: dict, name: str) -> list:
    return validate_list_type(req_list(data, name), name, dict)


def req_int(data: dict, name: str) -> int:
    return req_type(data, name, int)


def req_list(data: dict, name: str) -> list:
    return req_type(data, name, list)


def req_str(data: dict, name: str) -> str:
    return req_type(data, name, str)


def req_str_list(data: dict, name: str) -> List[str]:
    return validate_list_type(req_list(data, name), name, str)


def validate_list_type(items: list, name: str, desired_type) -> list:
    for item in items:
        if not isinstance(item, desired_type):
            raise ValueError('error in flag/segment data: property %s should be an array of %s but an item was %s' % (name, desired_type, item.__class__))
    return items


class ModelEntity:
    def __init__(self, data: dict):
        if not isinstance(data, dict):
            raise ValueError('error in flag/segment data: expected an object but got %s' % data.__class__)
        self._data = data

    def to_json_dict(self):
        return self._data

    def get(self, attribute, default=None) -> Any:
        return self._data.get(attribute, default)

    def __getitem__(self, attribute) -> Any:
        return self._data[attribute]

    def __contains__(self, attribute) -> bool:
        return attribute in self._data

    def __eq__(self, other) -> bool:
        return self.__class__ == other.__class__ and self._data == other._data

    def __ne__(self, other) -> bool:
        return not self.__eq__(other)

    def __repr__(self) -> str:
        return json.dumps(self._data, separators=(',', ':'))
