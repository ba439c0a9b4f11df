#
# An implementation of exact arithmetic in quadratic fields Q(√d)
#
# (c) Neil Booth 2007-2021.  All rights reserved.
#

import copy
import logging
import math
import numbers
import operator
import sys
import threading
from collections import namedtuple
from decimal import Decimal
from enum import IntFlag, IntEnum
from fractions import Fraction

import attr
from sympy import factorint

__all__ = ('Context', 'DefaultContext', 'get_context', 'set_context', 'local_context',
           'TextFormat', 'DefaultTextFormat', 'AsciiTextFormat',
           'Flags', 'Compare', 'HandlerKind', 'Branch', 'CoercionKind', 'Coercion',
           'QuadraticField', 'Quadratic', 'QuadraticReal', 'QuadraticImag', 'Complex', 'I',
           'get_field', 'is_square_free', 'is_exact', 'simplest_rational',
           'QuadraticError', 'InvalidParameterError', 'DegenerateFieldError',
           'NotRationalError', 'IncompatibleOperandError', 'RangeError',
           'UnsupportedOperationError', 'Signal', 'Inexact', 'DivisionByZero',
           'OP_ADD', 'OP_SUBTRACT', 'OP_MULTIPLY', 'OP_DIVIDE', 'OP_POWER')

_logger = logging.getLogger(__name__)


# Operation names
OP_ADD = 'add'
OP_SUBTRACT = 'subtract'
OP_MULTIPLY = 'multiply'
OP_DIVIDE = 'divide'
OP_POWER = 'power'

_operators = {
    OP_ADD: operator.add,
    OP_SUBTRACT: operator.sub,
    OP_MULTIPLY: operator.mul,
    OP_DIVIDE: operator.truediv,
}


# Four-way result of the compare() operation.
class Compare(IntEnum):
    LESS_THAN = 0
    EQUAL = 1
    GREATER_THAN = 2
    UNORDERED = 3


# Operation status flags.
class Flags(IntFlag):
    INEXACT     = 0x01
    DIV_BY_ZERO = 0x02


# Which variant of value a field holds, decided by the sign of d.
class Branch(IntEnum):
    REAL = 0
    IMAGINARY = 1


class CoercionKind(IntEnum):
    '''How coerce() brought the two operands of a binary operation to a common
    representation.'''
    # Both operands are values of the same field
    SAME_FIELD = 0
    # The other operand is an integer or fraction, wrapped into our field
    RATIONAL_WRAPPED = 1
    # Two real-branch values of different fields, both as floats
    CROSS_FIELD_REAL = 2
    # Values of different fields, at least one imaginary, both as Complex
    CROSS_FIELD_COMPLEX = 3
    # The other operand is a float or Decimal; we are its inexact equivalent
    INEXACT_REAL = 4
    # The other operand is a complex number; we are a Complex
    COMPLEX = 5


# lhs is the representation of the value being coerced, rhs that of the other operand.
Coercion = namedtuple('Coercion', 'kind lhs rhs')

EXACT_KINDS = frozenset((CoercionKind.SAME_FIELD, CoercionKind.RATIONAL_WRAPPED))


@attr.s(slots=True, kw_only=True, eq=False)
class TextFormat:
    '''Controls the output of conversion of quadratic and complex values to strings.'''

    # The text output before the radicand.
    radical = attr.ib(default='√')
    # If True the radicand is parenthesized, for example "√(-3)".
    radicand_parens = attr.ib(default=False)
    # If True a '*' always precedes the radical and the imaginary unit.  Otherwise one is
    # only output if the coefficient text does not end in a digit, as in "(1/2)*√5".
    force_multiply = attr.ib(default=False)
    # The imaginary unit of complex output.
    imaginary_unit = attr.ib(default='j')

    def format_rational(self, value):
        '''Return an integer as its digits and a fraction as "(n/d)".'''
        value = _to_rational(value)
        if isinstance(value, int):
            return str(value)
        return f'({value.numerator}/{value.denominator})'

    def format_part(self, value):
        '''Return the text of a real number appearing inside a larger expression.'''
        if isinstance(value, Quadratic):
            return self.format_quadratic(value)
        if _to_rational(value) is not None:
            return self.format_rational(value)
        return repr(value)

    def times(self, coefficient):
        if self.force_multiply or not coefficient[-1].isdigit():
            return coefficient + '*'
        return coefficient

    def format_quadratic(self, value):
        '''Return the canonical text of a + b√d, for example "((-1/2)-(1/2)*√5)".'''
        a, b, d = value.a, value.b, value.field.d
        sign = '-' if b < 0 else '+'
        coefficient = self.times(self.format_rational(abs(b)))
        radicand = f'({d})' if self.radicand_parens else str(d)
        return f'({self.format_rational(a)}{sign}{coefficient}{self.radical}{radicand})'

    def format_complex(self, value):
        '''Return the text of a complex number, for example "(1+(0+2√3)*j)".'''
        imag = value.imag
        negative = _is_negative(imag)
        coefficient = self.times(self.format_part(-imag if negative else imag))
        sign = '-' if negative else '+'
        return f'({self.format_part(value.real)}{sign}{coefficient}{self.imaginary_unit})'


# Default format: "(1+2√-3)", "((-1/2)-(1/2)*√5)" and "(1+(0+2√3)*j)"
DefaultTextFormat = TextFormat()

# ASCII-only output: "(1+2*sqrt(-3))"
AsciiTextFormat = TextFormat(radical='sqrt', radicand_parens=True, force_multiply=True)


#
# Exceptions
#

class QuadraticError(ArithmeticError):
    '''All exceptions raised by this module subclass from this.'''


class InvalidParameterError(QuadraticError, TypeError):
    '''Raised when the field parameter d is not an integer.'''


class DegenerateFieldError(QuadraticError, ValueError):
    '''Raised when the field parameter d is 0, 1 or not square-free.'''


class NotRationalError(QuadraticError, TypeError):
    '''Raised when a coefficient is neither an integer nor a fraction.'''


class IncompatibleOperandError(QuadraticError, TypeError):
    '''Raised when an operand cannot be coerced to a representation shared with a quadratic
    value.'''


class RangeError(QuadraticError, ValueError):
    '''Raised on exact or real conversion of a value with a non-zero imaginary part.'''


class UnsupportedOperationError(QuadraticError, TypeError):
    '''Raised when ordering or rounding is requested of an imaginary-branch value.'''


class Signal(QuadraticError):
    '''Base class of conditions that are signalled through the thread's context rather than
    simply raised.

    Signal expects two arguments:

         def __init__(self, op_tuple, result):

    op_tuple is a tuple of the operation name and operands causing the signal.  result is
    the value that default handling should deliver, or None if there is none.
    '''

    flag_to_raise = 0

    @property
    def op_tuple(self):
        return self.args[0]

    @property
    def default_result(self):
        return self.args[1]

    def signal(self, context=None):
        '''Call to signal the condition.  This handles it as specified in the context: raise
        the flag and return the default result unless the handler says otherwise.'''
        context = context or get_context()
        kind = context.handler(self.__class__)

        if kind != HandlerKind.NO_FLAG:
            context.flags |= self.flag_to_raise
            if kind == HandlerKind.RECORD_EXCEPTION:
                context.exceptions.append(self)

        if kind == HandlerKind.RAISE:
            raise self
        return self.default_result


class Inexact(Signal):
    '''Signalled when an operation on a quadratic value cannot deliver an exact result and
    delivers a float or complex one instead.'''

    flag_to_raise = Flags.INEXACT


class DivisionByZero(Signal, ZeroDivisionError):
    '''Signalled when the divisor's norm is zero, i.e. when dividing by zero.'''

    flag_to_raise = Flags.DIV_BY_ZERO

    def signal(self, context=None):
        '''There is no default result, so after handling by the base class the exception is
        always raised.'''
        super().signal(context)
        raise self


class HandlerKind(IntEnum):
    '''Indicates how a signalled condition should be handled.'''
    # Raise the associated flag and deliver the default result
    DEFAULT = 0

    # Deliver the default result without raising the associated flag
    NO_FLAG = 1

    # Default handling, but also append the exception to the context's exceptions list
    RECORD_EXCEPTION = 2

    # Raise the flag, then raise the exception
    RAISE = 3


class Context:
    '''The execution context for operations.  Carries the status flags, how signalled
    conditions are handled, and the text format used by repr() and str().'''

    __slots__ = ('flags', 'handlers', 'exceptions', 'text_format')

    def __init__(self, *, flags=0, text_format=None):
        self.flags = flags
        self.handlers = {}
        self.exceptions = []
        self.text_format = text_format or DefaultTextFormat

    def copy(self):
        '''Return a (deep) copy of the context.'''
        return copy.deepcopy(self)

    def set_handler(self, exc_classes, kind):
        classes = (exc_classes, ) if not isinstance(exc_classes, (tuple, list)) else exc_classes
        if not all(issubclass(exc_class, Signal) for exc_class in classes):
            raise TypeError('all exception classes must be subclasses of Signal')
        if not isinstance(kind, HandlerKind):
            raise TypeError('kind must be a HandlerKind instance')
        for exc_class in classes:
            self.handlers[exc_class] = kind

    def handler(self, exc_class):
        '''Return the HandlerKind for a signal class.'''
        if not issubclass(exc_class, Signal):
            raise TypeError('exc_class must be a subclass of Signal')

        for cls in exc_class.mro():
            kind = self.handlers.get(cls)
            if kind is not None:
                return kind

        return HandlerKind.DEFAULT

    def __repr__(self):
        return f'<Context flags={self.flags!r} text_format={self.text_format!r}>'


#
# Helpers
#

def _to_rational(value):
    '''Return value as an int, or a Fraction with a denominator other than one.  Return None
    if value is not a rational number.'''
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Rational):
        if value.denominator == 1:
            return int(value.numerator)
        if isinstance(value, Fraction):
            return value
        return Fraction(value.numerator, value.denominator)
    return None


def _quo(lhs, rhs):
    '''Divide, keeping the quotient of two rationals exact.'''
    if isinstance(lhs, numbers.Rational) and isinstance(rhs, numbers.Rational):
        return Fraction(lhs) / rhs
    return lhs / rhs


def _is_zero(value):
    '''Return True if value is exactly the zero of its own numeric type.'''
    if isinstance(value, (Quadratic, Complex)):
        return not value
    if isinstance(value, Decimal):
        return value.is_zero()
    return value == 0


def _is_negative(value):
    if isinstance(value, float):
        return math.copysign(1.0, value) < 0
    return value < 0


def _to_inexact(value):
    '''Return the float, or failing that the builtin complex, nearest to value.'''
    if isinstance(value, (numbers.Real, Decimal)):
        return float(value)
    return complex(value)


def _order(lhs, rhs):
    if lhs < rhs:
        return Compare.LESS_THAN
    if lhs > rhs:
        return Compare.GREATER_THAN
    if lhs == rhs:
        return Compare.EQUAL
    return Compare.UNORDERED


def _power_by_squaring(base, exponent, one):
    '''Right-to-left binary exponentiation.  exponent is a non-negative integer.'''
    result = one
    while True:
        exponent, bit = divmod(exponent, 2)
        if bit:
            result = result * base
        if exponent == 0:
            return result
        base = base * base


def is_exact(value):
    '''Return True if value is an integer, fraction, quadratic value, or a Complex whose parts
    are all exact.'''
    if isinstance(value, (numbers.Rational, Quadratic)):
        return True
    if isinstance(value, Complex):
        return is_exact(value.real) and is_exact(value.imag)
    return False


def is_square_free(n):
    '''Return True if no prime divides the integer n more than once.'''
    return all(multiplicity == 1 for multiplicity in factorint(n).values())


def simplest_rational(lower, upper):
    '''Return the rational with the smallest denominator, and of those the smallest
    magnitude numerator, in the closed interval [lower, upper].'''
    lower, upper = Fraction(lower), Fraction(upper)
    if lower > upper:
        lower, upper = upper, lower
    if lower <= 0 <= upper:
        return Fraction(0)
    if upper < 0:
        return -simplest_rational(-upper, -lower)

    floor_lower = math.floor(lower)
    if floor_lower == lower or floor_lower + 1 <= upper:
        return Fraction(math.ceil(lower))
    # Both bounds lie strictly between floor_lower and floor_lower + 1
    return floor_lower + 1 / simplest_rational(1 / (upper - floor_lower),
                                               1 / (lower - floor_lower))


#
# Field registry
#

@attr.s(slots=True, frozen=True, eq=False, repr=False)
class QuadraticField:
    '''The field Q(√d) for a square-free integer d other than 0 and 1.  Only instantiate
    indirectly through get_field(), which guarantees there is exactly one instance for each
    d so that fields can be compared by identity.

    A field is called to construct its values:

        >>> phi = get_field(5)(1, 1) / 2
    '''

    d = attr.ib()
    branch = attr.ib()

    @property
    def value_class(self):
        '''The class of the values of this field.'''
        return QuadraticReal if self.branch == Branch.REAL else QuadraticImag

    def is_real(self):
        '''Return True if d is positive, so all values of the field are real numbers.'''
        return self.branch == Branch.REAL

    def __call__(self, a, b=0):
        '''Return the value a + b√d.'''
        return self.value_class(self, a, b)

    def make_zero(self):
        return self(0, 0)

    def make_one(self):
        return self(1, 0)

    def make_sqrt(self):
        '''Return √d.'''
        return self(0, 1)

    def __repr__(self):
        return f'Quadratic[{self.d}]'

    def __reduce__(self):
        return (get_field, (self.d, ))


_fields = {}
_fields_lock = threading.Lock()


def get_field(d):
    '''Return the QuadraticField for d, creating it on first request.

    Raises InvalidParameterError if d is not an integer, and DegenerateFieldError if it is
    0, 1 or divisible by the square of a prime.'''
    if not isinstance(d, numbers.Integral) or isinstance(d, bool):
        raise InvalidParameterError(f'd must be an integer, not {type(d).__name__}')
    d = int(d)

    field = _fields.get(d)
    if field is not None:
        return field

    if d in (0, 1) or not is_square_free(d):
        raise DegenerateFieldError(f'd must be square-free other than 0 or 1; got {d:,d}')

    with _fields_lock:
        # Another thread may have won the race
        field = _fields.get(d)
        if field is None:
            field = QuadraticField(d, Branch.REAL if d > 0 else Branch.IMAGINARY)
            _fields[d] = field
            _logger.debug('created field %r', field)
    return field


#
# Quadratic values
#

class Quadratic(numbers.Number):
    '''An element a + b√d of a quadratic field, where a and b are exact rationals.

    Values are immutable.  a and b are held in canonical form: an int if integral,
    otherwise a Fraction.  Construct values by calling their field:

        >>> Quadratic[5](1, 1) / 2
        ((1/2)+(1/2)*√5)
        >>> Quadratic[-3](-1, 1) / 2
        ((-1/2)+(1/2)*√-3)

    Fields with d > 0 hold QuadraticReal values; those with d < 0 QuadraticImag values.
    '''

    __slots__ = ('_field', '_a', '_b')

    def __new__(cls, field, a, b=0):
        '''Validate and create a + b√d in the given field.'''
        if not isinstance(field, QuadraticField):
            raise TypeError('field must be a QuadraticField')
        value_class = field.value_class
        if not issubclass(value_class, cls):
            raise TypeError(f'{cls.__name__} cannot hold values of {field!r}')
        rational_a = _to_rational(a)
        rational_b = _to_rational(b)
        if rational_a is None or rational_b is None:
            raise NotRationalError('coefficients must be integers or fractions')
        self = object.__new__(value_class)
        object.__setattr__(self, '_field', field)
        object.__setattr__(self, '_a', rational_a)
        object.__setattr__(self, '_b', rational_b)
        return self

    def __class_getitem__(cls, d):
        return get_field(d)

    def __setattr__(self, name, value):
        raise AttributeError(f'{self.__class__.__name__} values are immutable')

    @property
    def field(self):
        return self._field

    @property
    def a(self):
        '''The rational part.'''
        return self._a

    @property
    def b(self):
        '''The coefficient of √d.'''
        return self._b

    ##
    ## Coercion
    ##

    def coerce(self, other):
        '''Return a Coercion giving a representation of self and other in which an operation
        on them can be performed.  Raises IncompatibleOperandError if there is none.'''
        coercion = self._coerce(other)
        if coercion is None:
            raise IncompatibleOperandError(
                f'{type(other).__name__} cannot be coerced into {self._field!r}')
        return coercion

    def _coerce(self, other):
        field = self._field
        if isinstance(other, Quadratic):
            if other._field is field:
                return Coercion(CoercionKind.SAME_FIELD, self, other)
            if self.is_real() and other.is_real():
                return Coercion(CoercionKind.CROSS_FIELD_REAL, self.to_f(), other.to_f())
            return Coercion(CoercionKind.CROSS_FIELD_COMPLEX, self.to_c(), other.to_c())

        rational = _to_rational(other)
        if rational is not None:
            return Coercion(CoercionKind.RATIONAL_WRAPPED, self, field(rational))

        if isinstance(other, float):
            return Coercion(CoercionKind.INEXACT_REAL, self._to_builtin(), other)
        if isinstance(other, Decimal):
            if self.is_real():
                return Coercion(CoercionKind.INEXACT_REAL, Decimal(self.to_f()), other)
            # Complex holds binary floats, not decimals
            return Coercion(CoercionKind.INEXACT_REAL, self.to_c(), float(other))
        if isinstance(other, (complex, Complex)):
            return Coercion(CoercionKind.COMPLEX, self.to_c(), other)

        return None

    def _arith(self, op, other, reflected):
        coercion = self._coerce(other)
        if coercion is None:
            return NotImplemented
        kind, lhs, rhs = coercion
        if reflected:
            lhs, rhs = rhs, lhs
        if kind in EXACT_KINDS:
            return getattr(lhs, '_' + op)(rhs)

        result = _operators[op](lhs, rhs)
        if not is_exact(result):
            op_tuple = (op, other, self) if reflected else (op, self, other)
            result = Inexact(op_tuple, result).signal()
        return result

    ##
    ## Field arithmetic.  The operand is a value of the same field.
    ##

    def _add(self, other):
        return self._field(self._a + other._a, self._b + other._b)

    def _subtract(self, other):
        return self._field(self._a - other._a, self._b - other._b)

    def _multiply(self, other):
        a, b = other._a, other._b
        return self._field(self._a * a + self._b * b * self._field.d,
                           self._a * b + self._b * a)

    def _divide(self, other):
        a, b = other._a, other._b
        norm = a * a - b * b * self._field.d
        if norm == 0:
            DivisionByZero((OP_DIVIDE, self, other), None).signal()
        return self._multiply(self._field(_quo(a, norm), _quo(-b, norm)))

    ##
    ## Python support - make it feel like a Python numeric data type.
    ##

    def __add__(self, other):
        return self._arith(OP_ADD, other, False)

    def __radd__(self, other):
        return self._arith(OP_ADD, other, True)

    def __sub__(self, other):
        return self._arith(OP_SUBTRACT, other, False)

    def __rsub__(self, other):
        return self._arith(OP_SUBTRACT, other, True)

    def __mul__(self, other):
        return self._arith(OP_MULTIPLY, other, False)

    def __rmul__(self, other):
        return self._arith(OP_MULTIPLY, other, True)

    def __truediv__(self, other):
        return self._arith(OP_DIVIDE, other, False)

    def __rtruediv__(self, other):
        return self._arith(OP_DIVIDE, other, True)

    def __neg__(self):
        return self._field(-self._a, -self._b)

    def __pos__(self):
        return self

    def __pow__(self, index):
        '''Integer powers, including those of quadratic and complex values equal to an
        integer, are exact.  Other powers are computed in floating point.'''
        if not isinstance(index, numbers.Number):
            return NotImplemented

        if _is_zero(index):
            return self._field.make_one()

        # complex -> real
        if isinstance(index, (complex, Complex)) and index.imag == 0:
            index = index.real

        # quadratic -> rational / float or complex
        if isinstance(index, Quadratic):
            index = index._a if index._b == 0 else _to_inexact(index)

        # rational -> integer
        rational = _to_rational(index)
        if rational is not None:
            index = rational

        if isinstance(index, int):
            one = self._field.make_one()
            base = self if index >= 0 else one._divide(self)
            return _power_by_squaring(base, abs(index), one)

        base = self.to_f() if self.is_real() else complex(self)
        result = base ** _to_inexact(index)
        return Inexact((OP_POWER, self, index), result).signal()

    def __rpow__(self, other):
        coercion = self._coerce(other)
        if coercion is None:
            return NotImplemented
        kind, lhs, rhs = coercion
        if kind == CoercionKind.RATIONAL_WRAPPED:
            return rhs ** self

        result = rhs ** lhs
        if not is_exact(result):
            result = Inexact((OP_POWER, other, self), result).signal()
        return result

    def __eq__(self, other):
        return self._equals(other)

    def __hash__(self):
        '''Python hash.  Values with b == 0 hash equally to their rational part, others to
        their float or Complex form as equality goes through those forms.'''
        if self._b == 0:
            return hash(self._a)
        return hash(self._to_builtin())

    def __bool__(self):
        return self._a != 0 or self._b != 0

    def __repr__(self):
        return self.to_string()

    def __str__(self):
        return self.to_string()

    def __reduce__(self):
        return (self._field, (self._a, self._b))

    def to_string(self, text_format=None):
        '''Return the text of the value; by default "(a+b√d)" as described for TextFormat.'''
        text_format = text_format or get_context().text_format
        return text_format.format_quadratic(self)

    def eql(self, other):
        '''Return True if other is a value of the same field with the same a and b.  Unlike
        ==, values of different fields or types are never eql.'''
        return (isinstance(other, Quadratic) and other._field is self._field
                and self._a == other._a and self._b == other._b)

    def fdiv(self, other):
        '''Return self / other computed in floating point: a float if both are real, otherwise
        a builtin complex.'''
        if not isinstance(other, numbers.Number):
            raise IncompatibleOperandError(
                f'{type(other).__name__} cannot be coerced into {self._field!r}')
        if self.is_real() and isinstance(other, (numbers.Real, Decimal)):
            return self.to_f() / float(other)
        return complex(self) / complex(other)

    ##
    ## Extensions for quadratic fields
    ##

    def qconj(self):
        '''Return the quadratic conjugate a - b√d.'''
        return self._field(self._a, -self._b)

    quadratic_conjugate = qconj
    conjugate = qconj

    def trace(self):
        '''Return self + self.qconj(), a rational.'''
        return self._a * 2

    def norm(self):
        '''Return self * self.qconj(), a rational.'''
        return self._a * self._a - self._b * self._b * self._field.d

    qabs2 = norm
    quadratic_abs2 = norm

    def discriminant(self):
        '''Return trace**2 - 4 * norm, a rational.'''
        return self._b * self._b * (self._field.d * 4)

    @property
    def denominator(self):
        '''The least common multiple of the denominators of a and b.'''
        return math.lcm(self._a.denominator, self._b.denominator)

    @property
    def numerator(self):
        '''self * self.denominator, a value with integer coefficients.'''
        denominator = self.denominator
        return self._field(self._a * denominator, self._b * denominator)


def _unsupported(name):
    '''Return a method that raises UnsupportedOperationError.'''
    def method(self, *args):
        raise UnsupportedOperationError(f'{name} is not supported by {self._field!r} '
                                        'as its values are not real')
    method.__name__ = name
    return method


class QuadraticReal(Quadratic, numbers.Real):
    '''A value of Q(√d) for d > 0.  Behaves like a real number and is totally ordered.'''

    __slots__ = ()

    def is_real(self):
        return True

    def to_c(self):
        return Complex(self, 0)

    def to_f(self):
        '''Return the nearest float.

        When a and b have opposite signs a + b√d would cancel significant digits, so the
        value is computed as (a² - b²d) / (a - b√d) instead.
        '''
        a, b, d = self._a, self._b, self._field.d
        sqrt_d = math.sqrt(d)
        if a * b < 0:
            return float(a * a - b * b * d) / (a - b * sqrt_d)
        return float(a + b * sqrt_d)

    _to_builtin = to_f

    def _exact_or_float(self):
        return self._a if self._b == 0 else self.to_f()

    def to_r(self):
        '''Return a Fraction; exact if b == 0, otherwise that of the nearest float.'''
        return Fraction(self._exact_or_float())

    def to_i(self):
        '''Return the integer part, truncating towards zero.'''
        return math.trunc(self._exact_or_float())

    def rationalize(self, eps=None):
        '''Return the simplest rational within eps of the value.  If eps is omitted, the
        rational part is returned if b == 0, otherwise the simplest rational that rounds to
        the same float.'''
        if self._b == 0:
            value = Fraction(self._a)
            if eps is None:
                return value
        else:
            f = self.to_f()
            value = Fraction(f)
            if eps is None:
                eps = Fraction(math.ulp(f)) / 2
        eps = abs(Fraction(eps))
        return simplest_rational(value - eps, value + eps)

    ##
    ## Comparisons
    ##

    def _compare(self, other):
        '''Return a Compare, or None if other has no real interpretation.'''
        if isinstance(other, Quadratic):
            if other._field is self._field:
                return _order(self._subtract(other).to_f(), 0)
            if other.is_real():
                return _order(self.to_f(), other.to_f())
            if other._b == 0:
                return self._compare(other._a)
            return None

        rational = _to_rational(other)
        if rational is not None:
            return _order(self._subtract(self._field(rational)).to_f(), 0)
        if isinstance(other, float):
            return _order(self.to_f(), other)
        if isinstance(other, Decimal):
            if other.is_nan():
                return Compare.UNORDERED
            return _order(self.to_f(), other)
        if isinstance(other, (complex, Complex)) and other.imag == 0:
            return self._compare(other.real)
        return None

    def compare(self, other):
        '''Return how self orders against other: LESS_THAN, EQUAL or GREATER_THAN.  UNORDERED
        is returned for NaNs, non-real complex numbers and non-numbers.'''
        order = self._compare(other)
        return Compare.UNORDERED if order is None else order

    def _equals(self, other):
        order = self._compare(other)
        if order is None:
            return NotImplemented if _as_complex(other) is None else False
        return order == Compare.EQUAL

    def __lt__(self, other):
        order = self._compare(other)
        if order is None:
            return NotImplemented
        return order == Compare.LESS_THAN

    def __le__(self, other):
        order = self._compare(other)
        if order is None:
            return NotImplemented
        return order in (Compare.EQUAL, Compare.LESS_THAN)

    def __ge__(self, other):
        order = self._compare(other)
        if order is None:
            return NotImplemented
        return order in (Compare.EQUAL, Compare.GREATER_THAN)

    def __gt__(self, other):
        order = self._compare(other)
        if order is None:
            return NotImplemented
        return order == Compare.GREATER_THAN

    ##
    ## Rounding and integer division
    ##

    def __float__(self):
        return self.to_f()

    def __int__(self):
        return self.to_i()

    def __complex__(self):
        return complex(self.to_f())

    def __trunc__(self):
        return math.trunc(self._exact_or_float())

    def __floor__(self):
        return math.floor(self._exact_or_float())

    def __ceil__(self):
        return math.ceil(self._exact_or_float())

    def __round__(self, ndigits=None):
        return round(self._exact_or_float(), ndigits)

    def __floordiv__(self, other):
        '''Return the floor of self / other as an int.'''
        if not isinstance(other, (numbers.Real, Decimal)):
            return NotImplemented
        quotient = self.__truediv__(other)
        if quotient is NotImplemented:
            return NotImplemented
        return math.floor(quotient)

    def __rfloordiv__(self, other):
        if not isinstance(other, (numbers.Real, Decimal)):
            return NotImplemented
        quotient = self.__rtruediv__(other)
        if quotient is NotImplemented:
            return NotImplemented
        return math.floor(quotient)

    def __mod__(self, other):
        '''Return self - other * (self // other), exact for operands of the same field.'''
        quotient = self.__floordiv__(other)
        if quotient is NotImplemented:
            return NotImplemented
        return self - other * quotient

    def __rmod__(self, other):
        quotient = self.__rfloordiv__(other)
        if quotient is NotImplemented:
            return NotImplemented
        return other - self * quotient

    ##
    ## Complex operations
    ##

    @property
    def real(self):
        return self

    @property
    def imag(self):
        return 0

    def rect(self):
        return (self, 0)

    def __abs__(self):
        return -self if self.to_f() < 0 else self

    def arg(self):
        return 0 if self.to_f() >= 0 else math.pi

    def polar(self):
        return (abs(self), self.arg())

    def abs2(self):
        '''Return self * self.'''
        return self._multiply(self)


class QuadraticImag(Quadratic, numbers.Complex):
    '''A value of Q(√d) for d < 0.  Behaves like a complex number; see to_c() for its
    complex form.  It has no ordering, rounding or integer division.'''

    __slots__ = ()

    def is_real(self):
        return False

    def to_c(self):
        '''Return an equivalent Complex.  Unless d is -1 its imaginary part is a value of
        Q(√-d), so no precision is lost:

            >>> Quadratic[-3](1, 2).to_c()
            (1+(0+2√3)*j)
            >>> Quadratic[-1](3, 4).to_c()
            (3+4j)
        '''
        d = self._field.d
        if d == -1:
            return Complex(self._a, self._b)
        return Complex(self._a, get_field(-d)(0, self._b))

    _to_builtin = to_c

    def _real_part(self, target):
        if self._b != 0:
            raise RangeError(f"can't convert {self} into {target}")
        return self._a

    def to_f(self):
        return float(self._real_part('float'))

    def to_r(self):
        return Fraction(self._real_part('Fraction'))

    def to_i(self):
        return math.trunc(self._real_part('int'))

    def rationalize(self, eps=None):
        value = Fraction(self._real_part('Fraction'))
        if eps is None:
            return value
        eps = abs(Fraction(eps))
        return simplest_rational(value - eps, value + eps)

    def __float__(self):
        return self.to_f()

    def __int__(self):
        return self.to_i()

    def __complex__(self):
        return complex(self.to_c())

    def _equals(self, other):
        other = _as_complex(other)
        if other is None:
            return NotImplemented
        mine = self.to_c()
        return mine.real == other.real and mine.imag == other.imag

    compare = _unsupported('compare')
    __lt__ = _unsupported('__lt__')
    __le__ = _unsupported('__le__')
    __gt__ = _unsupported('__gt__')
    __ge__ = _unsupported('__ge__')
    __trunc__ = _unsupported('__trunc__')
    __floor__ = _unsupported('__floor__')
    __ceil__ = _unsupported('__ceil__')
    __round__ = _unsupported('__round__')
    __floordiv__ = _unsupported('__floordiv__')
    __rfloordiv__ = _unsupported('__rfloordiv__')
    __mod__ = _unsupported('__mod__')
    __rmod__ = _unsupported('__rmod__')
    __divmod__ = _unsupported('__divmod__')
    __rdivmod__ = _unsupported('__rdivmod__')

    ##
    ## Complex operations
    ##

    @property
    def real(self):
        return self._a

    @property
    def imag(self):
        return self.to_c().imag

    def rect(self):
        return self.to_c().rect()

    def __abs__(self):
        return abs(self.to_c())

    def arg(self):
        return self.to_c().arg()

    def polar(self):
        return self.to_c().polar()

    abs2 = Quadratic.norm


#
# Complex numbers with exact parts
#

def _as_complex(value):
    '''Return value as a Complex, or None if it is not a number.'''
    if isinstance(value, Complex):
        return value
    if isinstance(value, QuadraticImag):
        return value.to_c()
    if isinstance(value, numbers.Real):
        return Complex(value, 0)
    if isinstance(value, complex):
        return Complex(value.real, value.imag)
    if isinstance(value, Decimal):
        return Complex(float(value), 0)
    return None


def _make_complex(real, imag):
    '''Complex numbers with two float parts are returned as builtin complex numbers.'''
    if isinstance(real, float) and isinstance(imag, float):
        return complex(real, imag)
    return Complex(real, imag)


class Complex(numbers.Complex):
    '''A complex number whose parts are real numbers of any type: integers, fractions,
    real-branch quadratic values or floats.  Arithmetic on exact parts is exact.

    This is the complex form of imaginary-branch quadratic values.
    '''

    __slots__ = ('_real', '_imag')

    def __new__(cls, real=0, imag=0):
        parts = []
        for part in (real, imag):
            if not isinstance(part, numbers.Real):
                raise TypeError(f'complex parts must be real numbers, not {type(part).__name__}')
            rational = _to_rational(part)
            parts.append(part if rational is None else rational)
        self = object.__new__(cls)
        object.__setattr__(self, '_real', parts[0])
        object.__setattr__(self, '_imag', parts[1])
        return self

    def __setattr__(self, name, value):
        raise AttributeError('Complex values are immutable')

    @property
    def real(self):
        return self._real

    @property
    def imag(self):
        return self._imag

    def rect(self):
        return (self._real, self._imag)

    def conjugate(self):
        return Complex(self._real, -self._imag)

    def abs2(self):
        '''Return the square of the magnitude, exact if the parts are.'''
        return self._real * self._real + self._imag * self._imag

    def __abs__(self):
        return math.hypot(float(self._real), float(self._imag))

    def arg(self):
        return math.atan2(float(self._imag), float(self._real))

    def polar(self):
        return (abs(self), self.arg())

    def _add(self, other):
        return _make_complex(self._real + other._real, self._imag + other._imag)

    def _subtract(self, other):
        return _make_complex(self._real - other._real, self._imag - other._imag)

    def _multiply(self, other):
        a, b, c, d = self._real, self._imag, other._real, other._imag
        return _make_complex(a * c - b * d, a * d + b * c)

    def _divide(self, other):
        a, b, c, d = self._real, self._imag, other._real, other._imag
        denominator = c * c + d * d
        if is_exact(denominator) and denominator == 0:
            DivisionByZero((OP_DIVIDE, self, other), None).signal()
        return _make_complex(_quo(a * c + b * d, denominator),
                             _quo(b * c - a * d, denominator))

    def _arith(self, op, other, reflected):
        other = _as_complex(other)
        if other is None:
            return NotImplemented
        if reflected:
            return getattr(other, '_' + op)(self)
        return getattr(self, '_' + op)(other)

    def __add__(self, other):
        return self._arith(OP_ADD, other, False)

    def __radd__(self, other):
        return self._arith(OP_ADD, other, True)

    def __sub__(self, other):
        return self._arith(OP_SUBTRACT, other, False)

    def __rsub__(self, other):
        return self._arith(OP_SUBTRACT, other, True)

    def __mul__(self, other):
        return self._arith(OP_MULTIPLY, other, False)

    def __rmul__(self, other):
        return self._arith(OP_MULTIPLY, other, True)

    def __truediv__(self, other):
        return self._arith(OP_DIVIDE, other, False)

    def __rtruediv__(self, other):
        return self._arith(OP_DIVIDE, other, True)

    def __neg__(self):
        return Complex(-self._real, -self._imag)

    def __pos__(self):
        return self

    def __pow__(self, index):
        if not isinstance(index, numbers.Number):
            return NotImplemented
        if _is_zero(index):
            return Complex(1, 0)
        if isinstance(index, (complex, Complex)) and index.imag == 0:
            index = index.real
        if isinstance(index, Quadratic) and index.b == 0:
            index = index.a
        rational = _to_rational(index)
        if isinstance(rational, int):
            one = Complex(1, 0)
            base = self if rational >= 0 else one / self
            return _power_by_squaring(base, abs(rational), one)
        return complex(self) ** _to_inexact(index)

    def __rpow__(self, other):
        other = _as_complex(other)
        if other is None:
            return NotImplemented
        return other ** self

    def __eq__(self, other):
        other = _as_complex(other)
        if other is None:
            return NotImplemented
        return self._real == other._real and self._imag == other._imag

    def __hash__(self):
        '''Combine the hashes of the parts as the builtin complex does, so that equal complex
        numbers of either type hash equally.'''
        modulus = 1 << sys.hash_info.width
        combined = (hash(self._real) + sys.hash_info.imag * hash(self._imag)) % modulus
        if combined >= modulus >> 1:
            combined -= modulus
        return -2 if combined == -1 else combined

    def __bool__(self):
        return bool(self._real) or bool(self._imag)

    def __complex__(self):
        return complex(float(self._real), float(self._imag))

    def __repr__(self):
        return self.to_string()

    def __str__(self):
        return self.to_string()

    def __reduce__(self):
        return (Complex, (self._real, self._imag))

    def to_string(self, text_format=None):
        text_format = text_format or get_context().text_format
        return text_format.format_complex(self)


#
# Per-thread contexts
#

# Each thread's context starts as a copy of this, which raises on division by zero.
DefaultContext = Context()
DefaultContext.set_handler(DivisionByZero, HandlerKind.RAISE)
_thread_state = threading.local()


def get_context():
    '''Return the calling thread's context, first creating it from DefaultContext.'''
    context = getattr(_thread_state, 'context', None)
    if context is None:
        context = _thread_state.context = DefaultContext.copy()
    return context


def set_context(context):
    '''Make context (itself, not a copy) the calling thread's context.'''
    if not isinstance(context, Context):
        raise TypeError('context must be a Context')
    _thread_state.context = context


class LocalContext:
    '''Run a with-block under a copy of a context.

    The copy is of the given context, or of the thread's current one if none is given.
    The block sees it through get_context(); the thread's previous context comes back on
    exit, so flags raised inside do not leak out.

        >>> with local_context() as context:
        ...     context.text_format = AsciiTextFormat
        ...     text = str(Quadratic[-3](1, 2))
    '''

    def __init__(self, context=None):
        self.template = context
        self.outer = None

    def __enter__(self):
        self.outer = get_context()
        inner = (self.template if self.template is not None else self.outer).copy()
        set_context(inner)
        return inner

    def __exit__(self, etype, value, traceback):
        set_context(self.outer)


local_context = LocalContext

# The imaginary unit
I = Complex(0, 1)
