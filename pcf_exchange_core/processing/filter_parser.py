"""
Parser for the OData subset used by the GetFootprints `$filter` parameter.

Supported: comparisons (eq ne gt ge lt le) on `/`-separated property paths,
quoted or bare literals, `and`/`or` joins optionally followed by `not`,
parenthesized groups and the `any`/`all` lambda collectors on list
properties. Groups are flattened into a sequence of joined operations in
document order.
"""

import re
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..constants import Protocol
from ..exceptions import ValidationError
from ..utils import identifier_utils

OPERATORS = {"eq": "=", "ne": "!=", "gt": ">", "ge": ">=", "lt": "<", "le": "<="}
COLLECTORS = ("any", "all")
JOINS = ("and", "or")

_TOKEN = re.compile(
    r"\s*(?:"
    r"(?P<quoted>'(?:[^']|'')*')"
    r"|(?P<punct>[()/:])"
    r"|(?P<word>[^\s()/':]+(?::[^\s()/':]+)*)"
    r")"
)


class FilterOperation(BaseModel):
    """One comparison; operand1 is the dotted property path."""

    operand1: str
    operator: str
    operand2: str
    collector: Optional[str] = None


class JoinedOperation(BaseModel):
    """A comparison joined to the preceding ones."""

    operator: str = Field(..., description="and, or, and not, or not")
    operation: FilterOperation


FilterExpression = List[Union[FilterOperation, JoinedOperation]]


def _tokenize(source: str) -> List[tuple]:
    tokens = []
    position = 0
    source = source.rstrip()
    while position < len(source):
        match = _TOKEN.match(source, position)
        if match is None or match.end() == position:
            raise ValidationError(
                f"Invalid filter near position {position}", field=Protocol.FILTER_PARAM
            )
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, source: str):
        self.tokens = _tokenize(source)
        self.position = 0
        self.results: FilterExpression = []

    def _peek(self, offset: int = 0) -> Optional[tuple]:
        index = self.position + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def _next(self) -> tuple:
        token = self._peek()
        if token is None:
            self._fail("unexpected end of filter")
        self.position += 1
        return token

    def _expect(self, value: str) -> None:
        kind, text = self._next()
        if text != value or kind == "quoted":
            self._fail(f"expected '{value}' but found '{text}'")

    def _is(self, value: str, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token is not None and token[0] != "quoted" and token[1] == value

    def _fail(self, reason: str):
        raise ValidationError(f"Invalid filter: {reason}", field=Protocol.FILTER_PARAM)

    def parse(self) -> FilterExpression:
        if not self.tokens:
            self._fail("filter is empty")
        self._expression(None)
        if self._peek() is not None:
            self._fail(f"unexpected '{self._peek()[1]}'")
        return self.results

    def _expression(self, join: Optional[str]) -> None:
        self._term(join)
        while self._peek() is not None and self._peek()[1] in JOINS and self._peek()[0] == "word":
            join = self._next()[1]
            if self._is("not"):
                self._next()
                join = f"{join} not"
            self._term(join)

    def _term(self, join: Optional[str]) -> None:
        if self._is("("):
            self._next()
            self._expression(join)
            self._expect(")")
            return
        operation = self._comparison()
        if join is None:
            self.results.append(operation)
        else:
            self.results.append(JoinedOperation(operator=join, operation=operation))

    def _word(self) -> str:
        kind, text = self._next()
        if kind != "word":
            self._fail(f"expected a property name but found '{text}'")
        return text

    def _path(self) -> List[str]:
        segments = [self._word()]
        while self._is("/"):
            self._next()
            segments.append(self._word())
        return segments

    def _comparison(self) -> FilterOperation:
        segments = self._path()
        collector = None
        if segments[-1] in COLLECTORS and self._is("("):
            collector = segments.pop()
            if not segments:
                self._fail(f"'{collector}' needs a collection property")
            operand1 = ".".join(segments)
            self._next()
            variable = self._word()
            self._expect(":")
            grouped = self._is("(")
            if grouped:
                self._next()
            inner = self._path()
            if inner[0] != variable:
                self._fail(f"lambda body must refer to '{variable}'")
            operator, operand2 = self._operator(), self._literal()
            if grouped:
                self._expect(")")
            self._expect(")")
        else:
            operand1 = ".".join(segments)
            operator, operand2 = self._operator(), self._literal()
        return FilterOperation(
            operand1=operand1, operator=operator, operand2=operand2, collector=collector
        )

    def _operator(self) -> str:
        kind, text = self._next()
        if kind != "word" or text not in OPERATORS:
            self._fail(f"unknown operator '{text}'")
        return OPERATORS[text]

    def _literal(self) -> str:
        kind, text = self._next()
        if kind == "quoted":
            return text[1:-1].replace("''", "'")
        if kind != "word":
            self._fail(f"expected a value but found '{text}'")
        return text


def parse_filter(source: str) -> FilterExpression:
    """
    Parse a `$filter` expression.

    Raises:
        ValidationError: If the expression cannot be parsed
    """
    if not isinstance(source, str):
        raise ValidationError("Filter must be a string", field=Protocol.FILTER_PARAM)
    return _Parser(source.strip()).parse()


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class FetchFilter(BaseModel):
    """
    Selection passed to GetFootprints.

    The OData expression is forwarded to the partner as-is once it parses.
    Product ids are rendered into the expression and also applied locally,
    since partners are free to ignore `$filter`.
    """

    odata: Optional[str] = None
    product_ids: List[str] = Field(default_factory=list, description="Product id URNs")

    @field_validator("odata")
    @classmethod
    def validate_odata(cls, v):
        if v is not None:
            parse_filter(v)
        return v

    @field_validator("product_ids")
    @classmethod
    def validate_product_ids(cls, v):
        for urn in v:
            if not identifier_utils.parse_product_urns([urn]):
                raise ValueError(f"Unsupported product id URN: {urn}")
        return v

    def render(self) -> Optional[str]:
        clauses = []
        if self.odata:
            clauses.append(self.odata)
        if self.product_ids:
            clauses.append(
                " or ".join(
                    f"productIds/any(productId:(productId eq {_quote(urn)}))"
                    for urn in self.product_ids
                )
            )
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return " and ".join(f"({clause})" for clause in clauses)

    def matches(self, footprint) -> bool:
        """Local check of the product id selection against a mapped footprint."""
        if not self.product_ids:
            return True
        urns = {
            identifier_utils.to_product_urn(identifier.scheme, identifier.code)
            for identifier in footprint.product_ids
        }
        return any(urn in urns for urn in self.product_ids)
