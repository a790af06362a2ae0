# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Safe Expression Evaluator

AST-based evaluation of transform and condition expressions.
Prevents arbitrary code execution while allowing data transforms:

- Arithmetic, comparison and logical operators
- Literals (numbers, strings, lists, dicts) plus true/false/null
- Key/attribute/index access into data (no names starting with "_")
- A fixed set of pure helper functions

No imports, no comprehensions, no lambdas, no access to builtins.
"""

import ast
import math
import operator
from typing import Any, Dict, Mapping


class ExpressionSecurityError(ValueError):
    """Expression uses syntax or names outside the sandbox"""
    pass


MAX_EXPRESSION_LENGTH = 1000
MAX_POWER_EXPONENT = 100
MAX_SEQUENCE_LENGTH = 100_000
MAX_INTEGER_BITS = 10_000


# Allowed operators for safe evaluation
SAFE_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Not: operator.not_,
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.In: lambda x, y: x in y,
    ast.NotIn: lambda x, y: x not in y,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


def _to_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    return int(number) if number.is_integer() else number


def _coalesce(*args: Any) -> Any:
    return next((arg for arg in args if arg is not None), None)


# Allowed functions for safe evaluation
SAFE_FUNCTIONS = {
    'len': len,
    'str': str,
    'int': int,
    'float': float,
    'bool': bool,
    'abs': abs,
    'min': min,
    'max': max,
    'round': round,
    'sum': sum,
    'sorted': sorted,
    # Editor-facing helpers
    'length': lambda value: len(value) if isinstance(value, (list, tuple, str, dict)) else 0,
    'toLowerCase': lambda s: s.lower() if isinstance(s, str) else '',
    'toUpperCase': lambda s: s.upper() if isinstance(s, str) else '',
    'trim': lambda s: s.strip() if isinstance(s, str) else '',
    'toString': lambda value: '' if value is None else str(value),
    'toNumber': _to_number,
    'isNull': lambda value: value is None,
    'coalesce': _coalesce,
}

CONSTANTS = {
    'true': True,
    'false': False,
    'null': None,
    'True': True,
    'False': False,
    'None': None,
}


def _integer_result_bits(op_type: type, left: Any, right: Any) -> int:
    """Upper bound on the bit length of an int product or power, 0 otherwise"""
    if not (isinstance(left, int) and isinstance(right, int)):
        return 0
    if op_type is ast.Pow and right > 0:
        return left.bit_length() * right
    if op_type is ast.Mult:
        return left.bit_length() + right.bit_length()
    return 0


class SafeEvaluator(ast.NodeVisitor):
    """
    AST-based safe evaluator for data expressions.

    Restricts evaluation to:
    - Basic arithmetic and comparison operators
    - Logical operators (and, or, not) and conditional expressions
    - Safe helper functions (len, toUpperCase, coalesce, etc.)
    - Variable references from provided context
    """

    def __init__(self, variables: Mapping[str, Any]):
        self.variables = variables

    def visit_Expression(self, node):
        return self.visit(node.body)

    def visit_Constant(self, node):
        return node.value

    def visit_Name(self, node):
        # Variable reference
        if node.id.startswith('_'):
            raise ExpressionSecurityError(f"Name not allowed: {node.id}")
        if node.id in self.variables:
            return self.variables[node.id]
        elif node.id in CONSTANTS:
            return CONSTANTS[node.id]
        elif node.id in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[node.id]
        else:
            raise ValueError(f"Undefined variable: {node.id}")

    def visit_List(self, node):
        return [self.visit(element) for element in node.elts]

    def visit_Tuple(self, node):
        return tuple(self.visit(element) for element in node.elts)

    def visit_Dict(self, node):
        if any(key is None for key in node.keys):
            raise ExpressionSecurityError("Dict unpacking not allowed")
        return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values)}

    def visit_Attribute(self, node):
        # data.field is sugar for data["field"]
        if node.attr.startswith('_'):
            raise ExpressionSecurityError(f"Attribute not allowed: {node.attr}")
        value = self.visit(node.value)
        if isinstance(value, Mapping):
            return value.get(node.attr)
        if value is None:
            return None
        raise ValueError(f"Cannot read attribute {node.attr!r} of {type(value).__name__}")

    def visit_Subscript(self, node):
        value = self.visit(node.value)
        key = self.visit(node.slice)
        if isinstance(key, str) and key.startswith('_'):
            raise ExpressionSecurityError(f"Key not allowed: {key}")
        if value is None:
            return None
        if isinstance(value, Mapping):
            return value.get(key)
        try:
            return value[key]
        except (IndexError, KeyError):
            return None
        except TypeError as e:
            raise ValueError(str(e))

    def visit_Slice(self, node):
        lower = self.visit(node.lower) if node.lower else None
        upper = self.visit(node.upper) if node.upper else None
        step = self.visit(node.step) if node.step else None
        return slice(lower, upper, step)

    def visit_BinOp(self, node):
        # Binary operation (e.g., a + b, x * y)
        left = self.visit(node.left)
        right = self.visit(node.right)
        op_type = type(node.op)

        if op_type not in SAFE_OPERATORS:
            raise ExpressionSecurityError(f"Operator not allowed: {op_type.__name__}")

        if op_type is ast.Pow and isinstance(right, (int, float)) and abs(right) > MAX_POWER_EXPONENT:
            raise ExpressionSecurityError(f"Exponent too large: {right}")

        if op_type is ast.Mult:
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(count, int) \
                        and len(seq) * count > MAX_SEQUENCE_LENGTH:
                    raise ExpressionSecurityError("Sequence repetition too large")

        if _integer_result_bits(op_type, left, right) > MAX_INTEGER_BITS:
            raise ExpressionSecurityError("Integer result too large")

        try:
            return SAFE_OPERATORS[op_type](left, right)
        except (TypeError, ZeroDivisionError, OverflowError) as e:
            raise ValueError(str(e))

    def visit_UnaryOp(self, node):
        # Unary operation (e.g., not x, -y)
        operand = self.visit(node.operand)
        op_type = type(node.op)

        if op_type not in SAFE_OPERATORS:
            raise ExpressionSecurityError(f"Operator not allowed: {op_type.__name__}")

        try:
            return SAFE_OPERATORS[op_type](operand)
        except TypeError as e:
            raise ValueError(str(e))

    def visit_Compare(self, node):
        # Comparison (e.g., x > 5, a == b)
        left = self.visit(node.left)

        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            op_type = type(op)

            if op_type not in SAFE_OPERATORS:
                raise ExpressionSecurityError(f"Operator not allowed: {op_type.__name__}")

            try:
                result = SAFE_OPERATORS[op_type](left, right)
            except TypeError as e:
                raise ValueError(str(e))

            if not result:
                return False

            left = right

        return True

    def visit_BoolOp(self, node):
        # Short-circuit like Python: returns the deciding operand
        if isinstance(node.op, ast.And):
            value = True
            for operand in node.values:
                value = self.visit(operand)
                if not value:
                    return value
            return value
        elif isinstance(node.op, ast.Or):
            value = False
            for operand in node.values:
                value = self.visit(operand)
                if value:
                    return value
            return value
        raise ExpressionSecurityError(f"Boolean operator not allowed: {type(node.op).__name__}")

    def visit_IfExp(self, node):
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Call(self, node):
        # Only direct calls to whitelisted helpers
        if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS \
                or node.func.id in self.variables:
            raise ExpressionSecurityError(f"Function not allowed: {getattr(node.func, 'id', 'unknown')}")

        func = SAFE_FUNCTIONS[node.func.id]
        args = [self.visit(arg) for arg in node.args]
        if any(kw.arg is None for kw in node.keywords):
            raise ExpressionSecurityError("Keyword unpacking not allowed")
        kwargs = {kw.arg: self.visit(kw.value) for kw in node.keywords}

        try:
            return func(*args, **kwargs)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{node.func.id}() failed: {e}")

    def generic_visit(self, node):
        raise ExpressionSecurityError(f"AST node type not allowed: {type(node).__name__}")


def evaluate_expression(
    expression: str,
    variables: Mapping[str, Any],
    max_length: int = MAX_EXPRESSION_LENGTH
) -> Any:
    """
    Safely evaluate a data expression.

    Args:
        expression: Python-style expression (e.g., "input.amount * 2")
        variables: Names visible to the expression
        max_length: Longest accepted expression source

    Returns:
        The expression's value

    Raises:
        ExpressionSecurityError: If the expression leaves the sandbox
        ValueError: If the expression is malformed or fails to evaluate

    Examples:
        >>> evaluate_expression("input.amount > 5", {"input": {"amount": 10}})
        True
        >>> evaluate_expression("toUpperCase(trigger.body.name)", {"trigger": {"body": {"name": "ada"}}})
        'ADA'
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ValueError("Expression is empty")
    if len(expression) > max_length:
        raise ExpressionSecurityError(f"Expression exceeds {max_length} characters")

    try:
        tree = ast.parse(expression.strip(), mode='eval')
    except SyntaxError as e:
        raise ValueError(f"Invalid expression syntax: {e.msg}")

    try:
        return SafeEvaluator(variables).visit(tree)
    except RecursionError:
        raise ExpressionSecurityError("Expression nesting too deep")


def evaluate_condition(condition: str, variables: Mapping[str, Any], max_length: int = MAX_EXPRESSION_LENGTH) -> bool:
    """Evaluate an expression and coerce the result to bool."""
    return bool(evaluate_expression(condition, variables, max_length=max_length))


def build_variables(context: Mapping[str, Any], input_value: Any, workflow_variables: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Names visible to a transform/condition expression.

    Sources whose key is a valid identifier are exposed directly
    (`trigger`, `fetch_user`); every source is reachable via `context["id"]`.
    """
    variables: Dict[str, Any] = {}
    for key, value in context.items():
        if key.isidentifier() and not key.startswith('_') and key not in SAFE_FUNCTIONS:
            variables[key] = value
    variables['context'] = dict(context)
    variables['variables'] = dict(workflow_variables or {})
    variables['input'] = input_value
    return variables
