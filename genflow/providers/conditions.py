"""Boolean condition expressions for poll status checks.

Provider rows carry expressions such as::

    status == "succeed" || status == "completed"

evaluated over the fields extracted by ``query_response_mapping``. Only
literals, variable names, ``==``/``!=`` (``===``/``!==`` accepted as
aliases), ``&&``, ``||``, ``!`` and parentheses are understood. There is no
attribute access, call or arithmetic.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, List, Mapping, Tuple

from ..exceptions import ConditionError

_TOKEN = re.compile(
    r"""
    \s*(?:
      (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<number>-?\d+(?:\.\d+)?)
    | (?P<op>===|!==|==|!=|&&|\|\||!|\(|\))
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    )""",
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}

Token = Tuple[str, Any]
Node = Tuple[Any, ...]


def _unescape(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", lambda m: m.group(1), body)


def tokenize(expression: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if not match or match.end() == pos:
            raise ConditionError(
                f"unexpected character at {pos} in condition: {expression!r}"
            )
        pos = match.end()
        if match.group("string") is not None:
            tokens.append(("lit", _unescape(match.group("string"))))
        elif match.group("number") is not None:
            number = match.group("number")
            tokens.append(("lit", float(number) if "." in number else int(number)))
        elif match.group("op") is not None:
            op = match.group("op")
            tokens.append(("op", {"===": "==", "!==": "!="}.get(op, op)))
        else:
            name = match.group("name")
            if name in _KEYWORDS:
                tokens.append(("lit", _KEYWORDS[name]))
            else:
                tokens.append(("var", name))
    return tokens


class _Parser:
    def __init__(self, tokens: List[Token], expression: str) -> None:
        self.tokens = tokens
        self.pos = 0
        self.expression = expression

    def _peek(self) -> Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take_op(self, *ops: str) -> str | None:
        token = self._peek()
        if token and token[0] == "op" and token[1] in ops:
            self.pos += 1
            return token[1]
        return None

    def _error(self, message: str) -> ConditionError:
        return ConditionError(f"{message} in condition: {self.expression!r}")

    def parse(self) -> Node:
        node = self._or()
        if self._peek() is not None:
            raise self._error(f"unexpected token {self._peek()[1]!r}")
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._take_op("||"):
            node = ("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._take_op("&&"):
            node = ("and", node, self._not())
        return node

    def _not(self) -> Node:
        if self._take_op("!"):
            return ("not", self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._primary()
        op = self._take_op("==", "!=")
        if op:
            return ("eq" if op == "==" else "ne", left, self._primary())
        return left

    def _primary(self) -> Node:
        if self._take_op("("):
            node = self._or()
            if not self._take_op(")"):
                raise self._error("missing ')'")
            return node
        token = self._peek()
        if token is None:
            raise self._error("unexpected end")
        if token[0] in ("lit", "var"):
            self.pos += 1
            return token
        raise self._error(f"unexpected token {token[1]!r}")


@lru_cache(maxsize=256)
def compile_condition(expression: str) -> Node:
    """Parse ``expression`` into a small AST; results are cached."""
    tokens = tokenize(expression)
    if not tokens:
        raise ConditionError("empty condition")
    return _Parser(tokens, expression).parse()


def _loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return (left in (None, "")) and (right in (None, ""))
    if left == right:
        return True
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    if isinstance(left, (int, float)) or isinstance(right, (int, float)):
        try:
            return float(left) == float(right)
        except (TypeError, ValueError):
            return False
    return False


def _eval(node: Node, variables: Mapping[str, Any]) -> Any:
    kind = node[0]
    if kind == "lit":
        return node[1]
    if kind == "var":
        return variables.get(node[1])
    if kind == "not":
        return not _eval(node[1], variables)
    if kind == "and":
        return bool(_eval(node[1], variables)) and bool(_eval(node[2], variables))
    if kind == "or":
        return bool(_eval(node[1], variables)) or bool(_eval(node[2], variables))
    if kind == "eq":
        return _loose_equals(_eval(node[1], variables), _eval(node[2], variables))
    if kind == "ne":
        return not _loose_equals(_eval(node[1], variables), _eval(node[2], variables))
    raise ConditionError(f"unknown node {kind!r}")


def evaluate_condition(expression: str | None, variables: Mapping[str, Any]) -> bool:
    """Evaluate ``expression`` with ``variables`` bound; empty means ``False``.

    Names not present in ``variables`` evaluate to ``None``, which compares
    equal to ``""`` and ``null``.
    """
    if not expression or not expression.strip():
        return False
    return bool(_eval(compile_condition(expression.strip()), variables))
