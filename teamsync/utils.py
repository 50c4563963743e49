"""Helpers for turning HTTP responses into values or descriptive errors."""

from __future__ import annotations

import json
from typing import Any, Callable

import requests

_CONVERSION_ERRORS = (ValueError, KeyError, TypeError, AttributeError)


class ResponseError(Exception):
    """An HTTP error status, annotated with the body of the response."""

    def __init__(self, message: str, status_code: int, body: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DeserializeError(ValueError):
    """A payload that could not be turned into the expected value."""


def custom_error_for_status(response: requests.Response) -> requests.Response:
    """Return ``response`` unchanged, or raise ``ResponseError`` carrying its body."""
    try:
        response.raise_for_status()
    except requests.HTTPError as err:
        body = response.text
        raise ResponseError(f"Body: {body!r}", response.status_code, body) from err
    return response


def _label(type_name: Any) -> str:
    if isinstance(type_name, str):
        return type_name
    return getattr(type_name, "__qualname__", repr(type_name))


def _converter(type_name: Any) -> Callable[[Any], Any]:
    if isinstance(type_name, str):
        return lambda value: value
    return getattr(type_name, "from_json", type_name)


def _pretty(text: str) -> str:
    try:
        return json.dumps(json.loads(text), indent=2, sort_keys=True, ensure_ascii=False)
    except ValueError:
        return text


def json_annotated(response: requests.Response, type_name: Any) -> Any:
    """Decode the response body as JSON and build the expected value from it.

    ``type_name`` is either a plain name (the decoded JSON is returned as is),
    a class with a ``from_json`` constructor, or any callable taking the decoded
    JSON. On failure the error message includes the response body, pretty
    printed when it is valid JSON.
    """
    text = response.text
    convert = _converter(type_name)
    try:
        return convert(json.loads(text))
    except _CONVERSION_ERRORS as err:
        raise DeserializeError(
            f"Cannot deserialize type `{_label(type_name)}` from the following "
            f"response body:\n{_pretty(text)}"
        ) from err