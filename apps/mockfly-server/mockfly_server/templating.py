"""Response templating.

String leaves of a response may embed ``{{expression}}`` tokens (``{{{expression}}}``
is accepted as an alias). An expression is a dotted lookup path:

* ``query.name``, ``params.name``, ``body.name``, ``headers.name`` read from the
  request; deeper paths such as ``body.user.email`` walk nested values;
* a bare ``name`` reads a top-level request field (``method``, ``url``, ``path``).

Missing keys render as an empty string. When a string contained at least one
token, the rendered text is coerced: ``true``/``false`` become booleans, ``null``
becomes ``None``, ``undefined`` drops the value, complete JSON arrays and objects
are parsed. Numbers stay strings so leading zeros survive.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Union

import structlog

from .request import MockRequest

LOGGER = structlog.get_logger("mockfly")

NAMESPACES: tuple[str, ...] = ("query", "params", "body", "headers")

_OPEN = "{{"
_CLOSE = "}}"
_EXPRESSION = re.compile(r"^[A-Za-z_$@][\w$@-]*(?:\.[\w$@-]+)*$")
_LOOSE_TOKEN = re.compile(r"\{\{([^}]+)\}\}")


class TemplateError(ValueError):
    """Raised when a template string uses malformed syntax."""


class _Undefined:
    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class TemplateContext:
    """Per-request data available to templates."""

    query: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    body: Any = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    url: str = "/"
    path: str = "/"

    @classmethod
    def from_request(cls, request: MockRequest) -> "TemplateContext":
        return cls(
            query=dict(request.query),
            params=dict(request.params),
            body=request.parsed_body,
            headers={key.lower(): value for key, value in request.headers.items()},
            method=request.method,
            url=request.url,
            path=request.path,
        )

    def as_mapping(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "params": self.params,
            "body": self.body,
            "headers": self.headers,
            "method": self.method,
            "url": self.url,
            "path": self.path,
        }


@dataclass(frozen=True)
class Expression:
    parts: tuple[str, ...]

    @property
    def namespaced(self) -> bool:
        return len(self.parts) > 1


@dataclass(frozen=True)
class TemplateVariable:
    """A variable referenced by a template, used for documentation."""

    segment: str
    name: str


CompiledTemplate = tuple[Union[str, Expression], ...]


def compile_template(template: str) -> CompiledTemplate:
    """Split ``template`` into literal text and expressions.

    Raises :class:`TemplateError` on unterminated tokens or invalid expressions.
    """

    parts: list[Union[str, Expression]] = []
    position = 0
    while True:
        start = template.find(_OPEN, position)
        if start == -1:
            if position < len(template):
                parts.append(template[position:])
            break
        if start > position:
            parts.append(template[position:start])
        triple = template.startswith("{", start + 2)
        opener = 3 if triple else 2
        closer = "}}}" if triple else _CLOSE
        end = template.find(closer, start + opener)
        if end == -1:
            raise TemplateError(f"Unterminated expression at position {start}")
        raw = template[start + opener : end].strip()
        if not raw:
            raise TemplateError(f"Empty expression at position {start}")
        if not _EXPRESSION.match(raw):
            raise TemplateError(f"Unsupported expression {raw!r}")
        parts.append(Expression(parts=tuple(raw.split("."))))
        position = end + len(closer)
    return tuple(parts)


def _lookup(context: dict[str, Any], expression: Expression) -> Any:
    head, *rest = expression.parts
    value: Any = context.get(head)
    for depth, part in enumerate(rest):
        if isinstance(value, dict):
            key = part.lower() if head == "headers" and depth == 0 else part
            value = value.get(key)
        elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            return None
    return value


def _stringify(value: Any) -> str:
    if value is None or value is UNDEFINED:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def evaluate(compiled: CompiledTemplate, context: TemplateContext) -> str:
    data = context.as_mapping()
    return "".join(
        part if isinstance(part, str) else _stringify(_lookup(data, part))
        for part in compiled
    )


def coerce_value(value: Any) -> Any:
    """Turn rendered text back into a typed JSON value."""

    if not isinstance(value, str):
        return value
    if _OPEN in value and _CLOSE in value:
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null":
        return None
    if value == "undefined":
        return UNDEFINED
    if (value.startswith("[") and value.endswith("]")) or (value.startswith("{") and value.endswith("}")):
        try:
            return json.loads(value)
        except ValueError:
            pass
    return value


def render_string(template: str, context: TemplateContext) -> Any:
    """Render one string leaf; malformed templates are logged and returned unrendered."""

    if _OPEN not in template:
        return template
    try:
        compiled = compile_template(template)
    except TemplateError as exc:
        LOGGER.error("template_render_failed", template=template, error=str(exc))
        return template
    return coerce_value(evaluate(compiled, context))


def render(template: Any, context: TemplateContext) -> Any:
    """Render ``template`` recursively against ``context``.

    ``UNDEFINED`` results are dropped from objects and become ``None`` inside
    arrays; a top-level ``UNDEFINED`` is returned as is.
    """

    if isinstance(template, str):
        return render_string(template, context)
    if isinstance(template, list):
        rendered = (render(item, context) for item in template)
        return [None if item is UNDEFINED else item for item in rendered]
    if isinstance(template, dict):
        result: dict[str, Any] = {}
        for key, item in template.items():
            value = render(item, context)
            if value is not UNDEFINED:
                result[key] = value
        return result
    return template


def _strings(template: Any) -> Iterator[str]:
    if isinstance(template, str):
        yield template
    elif isinstance(template, list):
        for item in template:
            yield from _strings(item)
    elif isinstance(template, dict):
        for item in template.values():
            yield from _strings(item)


def extract_variables(template: Any) -> list[TemplateVariable]:
    """List the variables referenced anywhere in ``template``, in first-seen order.

    Bare names are reported with the ``template`` segment.
    """

    found: list[TemplateVariable] = []
    for text in _strings(template):
        if _OPEN not in text:
            continue
        try:
            expressions = [part for part in compile_template(text) if isinstance(part, Expression)]
            paths = [part.parts for part in expressions]
        except TemplateError:
            paths = [tuple(match.strip().split(".")) for match in _LOOSE_TOKEN.findall(text)]
        for parts in paths:
            if len(parts) >= 2:
                variable = TemplateVariable(segment=parts[0], name=parts[1])
            else:
                variable = TemplateVariable(segment="template", name=parts[0])
            if variable.name and variable not in found:
                found.append(variable)
    return found
