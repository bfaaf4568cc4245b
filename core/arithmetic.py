"""
core/arithmetic.py

Deterministic evaluation of bare arithmetic expressions.

Messages that consist only of digits, arithmetic operators, parentheses,
whitespace, percent and caret symbols are answered here without involving any
provider or touching session memory. `^` means exponentiation and `%` modulo.
Evaluation walks a parsed syntax tree restricted to numeric constants and
arithmetic operators; nothing is ever passed to `eval`.
"""

import ast
import math
import operator
import re

from shared.models import ArithmeticOutcome

ARITHMETIC_SHAPE = re.compile(r"^[0-9+\-*/().\s^%]+$")
LEADING_ZEROS = re.compile(r"(?<![\d.])0+(?=\d)")

ANSWER_TEMPLATE = "Answer: {value}"
INVALID_EXPRESSION_REPLY = "Invalid mathematical expression."

# Exponents beyond this are rejected instead of evaluated
MAX_EXPONENT = 10000
# Integer results wider than this many bits are rejected before they are computed
MAX_RESULT_BITS = 100_000
# Longer inputs are treated as invalid without parsing
MAX_EXPRESSION_LENGTH = 1000

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def is_arithmetic(text: str) -> bool:
    """Return True when the whole text has the shape of an arithmetic expression."""
    return bool(ARITHMETIC_SHAPE.match(text)) and any(ch.isdigit() for ch in text)


def _check_result_size(op, left, right) -> None:
    """Reject integer powers and products whose result would exceed MAX_RESULT_BITS."""
    if not (isinstance(left, int) and isinstance(right, int)):
        return
    if isinstance(op, ast.Pow) and right > 0:
        estimate = max(left.bit_length(), 1) * right
    elif isinstance(op, ast.Mult):
        estimate = left.bit_length() + right.bit_length()
    else:
        return
    if estimate > MAX_RESULT_BITS:
        raise ValueError(f"Result too large: about {estimate} bits")


def _evaluate_node(node):
    if isinstance(node, ast.Expression):
        return _evaluate_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate_node(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate_node(node.left)
        right = _evaluate_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError(f"Exponent too large: {right}")
        _check_result_size(node.op, left, right)
        return _BINARY_OPERATORS[type(node.op)](left, right)
    raise ValueError(f"Unsupported expression node: {type(node).__name__}")


def format_number(value) -> str:
    """Render integral results without a trailing '.0'."""
    if isinstance(value, complex):
        raise ValueError("Complex results are not supported")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Non-finite result: {value}")
        if value.is_integer() and abs(value) < 1e15:
            return str(int(value))
        return repr(value)
    return str(value)


def evaluate_expression(text: str) -> ArithmeticOutcome:
    """
    Recognize and evaluate a bare arithmetic expression.

    Args:
        text (str): Raw user input.

    Returns:
        ArithmeticOutcome: `matched=False` when the text is not arithmetic. When it is,
        `valid` tells whether evaluation succeeded and `value` holds the rendered result.
        Evaluation errors never propagate.
    """
    if not is_arithmetic(text):
        return ArithmeticOutcome(matched=False)
    if len(text) > MAX_EXPRESSION_LENGTH:
        return ArithmeticOutcome(matched=True, valid=False)

    expression = LEADING_ZEROS.sub("", text.strip()).replace("^", "**")
    try:
        tree = ast.parse(expression, mode="eval")
        value = format_number(_evaluate_node(tree))
    except (SyntaxError, ValueError, ArithmeticError, TypeError):
        return ArithmeticOutcome(matched=True, valid=False)
    return ArithmeticOutcome(matched=True, valid=True, value=value)


def render_reply(outcome: ArithmeticOutcome) -> str:
    """Build the user-facing reply for a matched expression."""
    if outcome.valid:
        return ANSWER_TEMPLATE.format(value=outcome.value)
    return INVALID_EXPRESSION_REPLY
