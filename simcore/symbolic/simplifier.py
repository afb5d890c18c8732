"""Equation simplification with SymPy.

Each input string is parsed with :func:`sympy.parsing.sympy_parser.parse_expr`
and passed through :func:`sympy.simplify`.  A single ``=`` splits the
string into the two sides of an equation, which becomes ``Eq(lhs, rhs)``
before simplification::

    >>> SympySimplifier().simplify(["x + x + y"]).simplified_forms
    ['2*x + y']

Parsing evaluates the input in-process; problem files are trusted input.
"""
from __future__ import annotations

import logging
import re
from tokenize import TokenError
from typing import Iterable

import sympy
from sympy.parsing.sympy_parser import parse_expr

from simcore.core.errors import SymbolicFailed
from simcore.core.models import ProcessedEquations

logger = logging.getLogger(__name__)

# A lone "=" (not part of ==, <=, >= or !=)
_ASSIGN_RE = re.compile(r"(?<![<>=!])=(?!=)")


class SympySimplifier:
    def __init__(self, rational: bool = False):
        self.rational = rational

    def simplify(self, equations: Iterable[str]) -> ProcessedEquations:
        """Simplify *equations* in order.

        Raises
        ------
        SymbolicFailed
            Naming the first equation that cannot be parsed or simplified.
        """
        forms = []
        for index, text in enumerate(equations):
            try:
                expr = self.parse(text)
                forms.append(str(sympy.simplify(expr, rational=self.rational)))
            except SymbolicFailed:
                raise
            except (sympy.SympifyError, SyntaxError, TypeError, ValueError,
                    AttributeError, NameError, TokenError) as exc:
                raise SymbolicFailed(
                    f"Equation {index} ({text!r}) could not be simplified: {exc}"
                ) from exc
        logger.info("Simplified %d equation(s)", len(forms))
        return ProcessedEquations(simplified_forms=forms)

    @staticmethod
    def parse(text: str):
        """Parse *text* into a SymPy expression or ``Eq``."""
        if not isinstance(text, str) or not text.strip():
            raise SymbolicFailed(f"Empty or non-string equation: {text!r}")
        sides = _ASSIGN_RE.split(text)
        if len(sides) == 1:
            return parse_expr(text)
        if len(sides) == 2:
            lhs, rhs = (s.strip() for s in sides)
            if not lhs or not rhs:
                raise SymbolicFailed(f"Equation {text!r} is missing a side")
            return sympy.Eq(parse_expr(lhs), parse_expr(rhs))
        raise SymbolicFailed(f"Equation {text!r} contains more than one '='")
