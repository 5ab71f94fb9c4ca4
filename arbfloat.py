#
# An implementation of arbitrary-precision binary floating-point numbers with per-value
# precision
#
# (c) The arbfloat authors.  All rights reserved.
#

import logging
import threading
from decimal import Decimal
from enum import IntFlag, IntEnum
from fractions import Fraction
from math import isinf, isnan, isqrt, log2
from numbers import Rational

import attr


__all__ = ('Context', 'DefaultContext', 'get_context', 'set_context', 'local_context',
           'DefaultDecFormat', 'TextFormat', 'Flags', 'Compare', 'Sign', 'BigFloat',
           'BigFloatError', 'DivisionByZero', 'InvalidOperation', 'InvalidSqrt',
           'ParseFloatError',
           'ROUND_CEILING', 'ROUND_FLOOR', 'ROUND_DOWN', 'ROUND_UP',
           'ROUND_HALF_EVEN', 'ROUND_HALF_UP', 'ROUND_HALF_DOWN',
           'DEFAULT_PRECISION', 'MIN_RADIX', 'MAX_RADIX')


logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 32
MIN_RADIX = 2
MAX_RADIX = 62
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1
# Below the interpreter's default limit on int <-> str conversions
MAX_STR_DIGITS = 4000
MAX_STR_BITS = 13000
# Powers in parse() with more bits than this plus the precision are not computed exactly
EXACT_POWER_BITS = 100_000

# Rounding modes
ROUND_CEILING   = 'ROUND_CEILING'       # Towards +infinity
ROUND_FLOOR     = 'ROUND_FLOOR'         # Towards -infinity
ROUND_DOWN      = 'ROUND_DOWN'          # Towards zero
ROUND_UP        = 'ROUND_UP'            # Away from zero
ROUND_HALF_EVEN = 'ROUND_HALF_EVEN'     # To nearest with ties towards even
ROUND_HALF_DOWN = 'ROUND_HALF_DOWN'     # To nearest with ties towards zero
ROUND_HALF_UP   = 'ROUND_HALF_UP'       # To nearest with ties away from zero

ALL_ROUNDINGS = frozenset((ROUND_CEILING, ROUND_FLOOR, ROUND_DOWN, ROUND_UP,
                           ROUND_HALF_EVEN, ROUND_HALF_DOWN, ROUND_HALF_UP))

# Operation names
OP_ADD = 'add'
OP_SUBTRACT = 'subtract'
OP_MULTIPLY = 'multiply'
OP_DIVIDE = 'divide'
OP_REMAINDER = 'remainder'
OP_FLOORDIV = 'floordiv'
OP_SQRT = 'sqrt'
OP_RELDIFF = 'reldiff'


# Result of the compare() operation.  UNORDERED only arises against a float NaN.
class Compare(IntEnum):
    LESS_THAN = -1
    EQUAL = 0
    GREATER_THAN = 1
    UNORDERED = 2


class Sign(IntEnum):
    NEGATIVE = -1
    ZERO = 0
    POSITIVE = 1


# Operation status flags.
class Flags(IntFlag):
    INVALID     = 0x01
    DIV_BY_ZERO = 0x02
    INEXACT     = 0x04


@attr.s(slots=True, kw_only=True, cmp=False)
class TextFormat:
    '''Controls the output of conversion to decimal strings.'''

    # The minimum number of digits to output in the exponent.  Defaults to 1.  0
    # suppresses the exponent by adding leading or trailing zeroes to the significand as
    # needed (as for the printf 'f' format specifier).  If negative, apply the rule for
    # the printf 'g' format specifier to decide whether to display an exponent or not, in
    # which case the minimum number of digits in the exponent is the absolute value.
    exp_digits = attr.ib(default=1)
    # If True positive exponents display a '+'.
    force_exp_sign = attr.ib(default=True)
    # If True, non-negative numbers are preceded with a '+'.
    force_leading_sign = attr.ib(default=False)
    # If True, display a point followed by a zero even though none is needed.  For
    # example, "5" and "1e2" would display as "5.0" and "1.0e2".
    force_point = attr.ib(default=False)
    # If True, the exponent character is in upper case.
    upper_case = attr.ib(default=False)
    # If True, trailing insignificant zeroes are stripped
    rstrip_zeroes = attr.ib(default=False)

    def exponent_str(self, exponent):
        '''Return the formatted exponent.'''
        sign = '-' if exponent < 0 else '+' if self.force_exp_sign else ''
        main = str(abs(exponent))
        zeroes = '0' * (abs(self.exp_digits) - len(main))
        return f'{sign}{zeroes}{main}'

    def format_decimal(self, sign, exponent, digits, precision=None):
        '''sign is True if the number is negative.  digits is a string of significant decimal
        digits.  exponent is the exponent of the leading digit, i.e. the decimal point
        appears exponent digits after the leading digit.
        '''
        precision = precision or len(digits)
        assert precision > 0

        if self.rstrip_zeroes:
            digits = digits.rstrip('0') or '0'

        parts = []
        if sign:
            parts.append('-')
        elif self.force_leading_sign:
            parts.append('+')

        exp_digits = self.exp_digits
        if exp_digits < 0 and precision > exponent >= -4:
            exp_digits = 0

        if exp_digits:
            parts.append(digits[0])
            if len(digits) > 1:
                parts.extend(('.', digits[1:]))
            elif self.force_point:
                parts.append('.0')
            parts.append('E' if self.upper_case else 'e')
            parts.append(self.exponent_str(exponent))
        else:
            point = exponent + 1
            if point <= 0:
                parts.extend(('0.', '0' * -point, digits))
            else:
                digits += '0' * (point - len(digits))
                if point < len(digits):
                    parts.extend((digits[:point], '.', digits[point:]))
                else:
                    parts.append(digits)
                    if self.force_point:
                        parts.append('.0')

        return ''.join(parts)


# Format used by str() and to_decimal_string()
DefaultDecFormat = TextFormat(exp_digits=-2, force_point=True)


#
# Signals
#

class BigFloatError(ArithmeticError):
    '''All arithmetic exceptions signalled by this module subclass from this.

    The first argument is an op_tuple: the operation name followed by its operands.
    '''

    flag_to_raise = 0

    @property
    def op_tuple(self):
        return self.args[0]

    def signal(self, context=None):
        '''Record the exception's flag in the context and raise it.'''
        context = context or get_context()
        context.flags |= self.flag_to_raise
        logger.debug('%s signalled by %s', self.__class__.__name__, self.op_tuple[0])
        raise self


class DivisionByZero(BigFloatError, ZeroDivisionError):
    '''Signalled when the divisor of a divide, remainder or floor division is zero.'''

    flag_to_raise = Flags.DIV_BY_ZERO


class InvalidOperation(BigFloatError, ValueError):
    '''Signalled when an operation has no defined result.'''

    flag_to_raise = Flags.INVALID


class InvalidSqrt(InvalidOperation):
    '''Signalled if the sqrt operand is not strictly positive.'''


class ParseFloatError(ValueError):
    '''Raised when text is not a valid number in the requested radix.'''

    def __init__(self):
        super().__init__('invalid float string')


class Context:
    '''The execution context for operations.  Carries the precision of newly constructed
    values, the rounding mode and the status flags.'''

    __slots__ = ('precision', 'rounding', 'flags')

    def __init__(self, *, precision=DEFAULT_PRECISION, rounding=ROUND_HALF_EVEN, flags=0):
        '''precision is the default precision of BigFloat(); rounding is one of the ROUND_
        constants and controls the rounding of inexact results.  flags represents the
        initially raised flags.
        '''
        self.precision = check_precision(precision)
        if rounding not in ALL_ROUNDINGS:
            raise ValueError(f'invalid rounding mode: {rounding!r}')
        self.rounding = rounding
        self.flags = flags

    def copy(self):
        '''Return a copy of the context.'''
        return Context(precision=self.precision, rounding=self.rounding, flags=self.flags)

    def __repr__(self):
        return (f'<Context precision={self.precision} rounding={self.rounding} '
                f'flags={self.flags!r}>')


# When precision is lost during a calculation these indicate what fraction of the LSB the
# lost bits represented.  It essentially combines the roles of 'guard' and 'sticky' bits.
LF_EXACTLY_ZERO = 0           # 000000
LF_LESS_THAN_HALF = 1         # 0xxxxx  x's not all zero
LF_EXACTLY_HALF = 2           # 100000
LF_MORE_THAN_HALF = 3         # 1xxxxx  x's not all zero


class BigFloat:
    '''Internal Representation
       -----------------------

    A value is (-1)^sign * significand * 2^exponent where the significand is a
    non-negative integer of at most precision bits.  The representation is kept
    canonical: the significand is odd, or it is zero in which case the sign is False and
    the exponent zero.  There are no infinities, NaNs or negative zeroes.

    Precision belongs to the storage, not the value.  Assignments round into the
    destination's precision; operations on two values produce a result with the greater
    of their precisions.
    '''

    __slots__ = ('_precision', '_sign', '_exponent', '_significand')

    # Mutable, so unhashable
    __hash__ = None

    def __init__(self, precision=None):
        '''A zero with the given precision in bits, or that of the current context.'''
        if precision is None:
            precision = get_context().precision
        self._precision = check_precision(precision)
        self._sign = False
        self._exponent = 0
        self._significand = 0

    @classmethod
    def _from_parts(cls, precision, parts):
        result = cls(precision)
        result._sign, result._exponent, result._significand = parts
        return result

    @classmethod
    def zero(cls):
        '''The additive identity at 32 bits.'''
        return cls(DEFAULT_PRECISION)

    @classmethod
    def one(cls):
        '''The multiplicative identity at 32 bits.'''
        return cls._from_parts(DEFAULT_PRECISION, (False, 0, 1))

    @classmethod
    def from_int(cls, value, precision=None, context=None):
        result = cls(precision)
        result.assign_int(value, context)
        return result

    @classmethod
    def from_fraction(cls, value, precision=None, context=None):
        result = cls(precision)
        result.assign_fraction(value, context)
        return result

    @classmethod
    def from_float(cls, value, precision=None, context=None):
        result = cls(precision)
        result.assign_float(value, context)
        return result

    @classmethod
    def from_decimal(cls, value, precision=None, context=None):
        result = cls(precision)
        result.assign_decimal(value, context)
        return result

    @classmethod
    def from_string(cls, text, radix=10, precision=None, context=None):
        '''Parse text in the given radix.  Raises ParseFloatError if it is malformed.'''
        result = cls(precision)
        result.parse(text, radix, context)
        return result

    @classmethod
    def from_value(cls, value, precision=None, context=None):
        '''Return a new value of the given precision holding value, which can be a BigFloat,
        int, Rational, float, Decimal or str.'''
        result = cls(precision)
        result.assign(value, context)
        return result

    def copy(self):
        '''Return an independent value with the same precision and value.'''
        return BigFloat._from_parts(self._precision, self._parts())

    __copy__ = copy

    def __deepcopy__(self, memo):
        return self.copy()

    def _parts(self):
        return self._sign, self._exponent, self._significand

    ##
    ## Precision management
    ##

    @property
    def precision(self):
        '''The number of significand bits this value retains.'''
        return self._precision

    def set_precision(self, precision, context=None):
        '''Change the precision, rounding the value if it no longer fits.'''
        precision = check_precision(precision)
        logger.debug('precision change %d -> %d', self._precision, precision)
        self._precision = precision
        if self._significand.bit_length() > precision:
            self._set_parts(*self._parts(), context)

    def _set_parts(self, sign, exponent, significand, context=None):
        '''Store ±significand * 2^exponent rounded to our precision.'''
        context = context or get_context()
        self._sign, self._exponent, self._significand = normalize(
            sign, exponent, significand, self._precision, context)

    def _set_ratio(self, sign, exponent, numerator, denominator, context=None):
        '''Store ±(numerator / denominator) * 2^exponent rounded to our precision.'''
        context = context or get_context()
        self._sign, self._exponent, self._significand = normalize_ratio(
            sign, exponent, numerator, denominator, self._precision, context)

    ##
    ## Assignment.  The destination's precision never changes.
    ##

    def assign(self, value, context=None):
        '''Set our value from value rounded to our precision.  value can be a BigFloat, int,
        Rational, float, Decimal or (decimal) str.'''
        if isinstance(value, BigFloat):
            self._set_parts(*value._parts(), context)
        elif isinstance(value, int):
            self.assign_int(value, context)
        elif isinstance(value, Rational):
            self.assign_fraction(value, context)
        elif isinstance(value, float):
            self.assign_float(value, context)
        elif isinstance(value, Decimal):
            self.assign_decimal(value, context)
        elif isinstance(value, str):
            self.parse(value, 10, context)
        else:
            raise TypeError(f'cannot assign a value of type {type(value).__name__}')

    def assign_int(self, value, context=None):
        '''Set our value from an integer, rounding if necessary.'''
        if not isinstance(value, int):
            raise TypeError('assign_int requires an integer')
        self._set_parts(value < 0, 0, abs(value), context)

    def assign_int64(self, value, context=None):
        '''Set our value from an integer in the signed 64-bit range.'''
        if not isinstance(value, int):
            raise TypeError('assign_int64 requires an integer')
        if not INT64_MIN <= value <= INT64_MAX:
            raise OverflowError(f'{value:,d} does not fit in a signed 64-bit integer')
        self.assign_int(value, context)

    def assign_fraction(self, value, context=None):
        '''Set our value from a rational: its numerator divided by its denominator, correctly
        rounded to our precision.'''
        if not isinstance(value, Rational):
            raise TypeError('assign_fraction requires a rational')
        numerator, denominator = value.numerator, value.denominator
        if denominator < 0:
            numerator, denominator = -numerator, -denominator
        if denominator == 0:
            raise ZeroDivisionError('rational with a zero denominator')
        self._set_ratio(numerator < 0, 0, abs(numerator), denominator, context)

    def assign_float(self, value, context=None):
        '''Set our value from the exact value of a float, rounding if necessary.'''
        if not isinstance(value, float):
            raise TypeError('assign_float requires a float')
        # Raises ValueError for NaNs and OverflowError for infinities
        self.assign_fraction(Fraction(*value.as_integer_ratio()), context)

    def assign_decimal(self, value, context=None):
        '''Set our value from the exact value of a Decimal, rounding if necessary.'''
        if not isinstance(value, Decimal):
            raise TypeError('assign_decimal requires a Decimal instance')
        self.assign_fraction(Fraction(value), context)

    def parse(self, text, radix=10, context=None):
        '''Set our value from text in the given radix, rounding if necessary.

        The mantissa is an optional sign followed by digits with an optional radix point.
        An exponent follows an '@' marker, or for radices up to 10 also 'e' or 'E', and
        scales by powers of the radix.  It is written in the radix, or in decimal if
        radix is negative.  Leading whitespace is ignored.

        Raises ParseFloatError leaving our value unchanged if text is malformed.
        '''
        sign, mantissa, power, base = parse_radix_string(text, radix)
        context = context or get_context()
        self._sign, self._exponent, self._significand = scale_by_power(
            sign, mantissa, base, power, self._precision, context)

    ##
    ## Output
    ##

    def to_string(self, n_digits=0, radix=10):
        '''Return a (digits, exponent) pair.  The value is 0.digits * radix^exponent, and
        digits is preceded by '-' if the value is negative.

        At most n_digits significant digits are generated, rounded to nearest with ties to
        even; trailing zeroes are stripped.  If n_digits is 0 enough digits are generated
        to read back the same value at our precision.  Zero returns ('', 0).  A negative
        radix selects upper-case letters for radices up to 36.
        '''
        if not isinstance(n_digits, int) or n_digits < 0:
            raise ValueError('n_digits must be a non-negative integer')
        base = check_radix(radix)
        if not self._significand:
            return '', 0
        if n_digits == 0:
            n_digits = significant_digits(self._precision, base)

        numerator = self._significand << max(0, self._exponent)
        denominator = 1 << max(0, -self._exponent)
        exponent = radix_exponent(numerator, denominator, base)

        # Scale so that n_digits digits lie before the radix point, then round
        scale = n_digits - exponent
        if scale >= 0:
            numerator *= base ** scale
        else:
            denominator *= base ** -scale
        value, rem = divmod(numerator, denominator)
        if round_up(ROUND_HALF_EVEN, lost_fraction_from_remainder(rem, denominator),
                    False, bool(value & 1)):
            value += 1
            if value == base ** n_digits:
                value = base ** (n_digits - 1)
                exponent += 1

        alphabet = digit_alphabet(base, radix < 0)
        digits = int_to_digits(value, base, alphabet).rstrip('0')
        if self._sign:
            digits = '-' + digits
        return digits, exponent

    def to_decimal_string(self, n_digits=0, text_format=None):
        '''Return the value as human-readable decimal text.  n_digits is as for to_string().
        See TextFormat for output control.'''
        text_format = text_format or DefaultDecFormat
        digits, exponent = self.to_string(n_digits, 10)
        if not digits:
            digits, exponent = '0', 1
        digits = digits.lstrip('-')
        precision = n_digits or significant_digits(self._precision, 10)
        return text_format.format_decimal(self._sign, exponent - 1, digits, precision)

    def __str__(self):
        return self.to_decimal_string()

    def __repr__(self):
        return f'<BigFloat {self} precision={self._precision}>'

    ##
    ## Sign
    ##

    def sign(self):
        '''Return the Sign of the value.'''
        if not self._significand:
            return Sign.ZERO
        return Sign.NEGATIVE if self._sign else Sign.POSITIVE

    def is_zero(self):
        return not self._significand

    def is_positive(self):
        return bool(self._significand) and not self._sign

    def is_negative(self):
        return self._sign

    def signum(self):
        '''Return -1, 0 or 1 according to our sign, at our precision.'''
        return BigFloat._from_parts(self._precision,
                                    (self._sign, 0, 1 if self._significand else 0))

    ##
    ## Arithmetic.  Results have the greater of the operand precisions.
    ##

    def add(self, other, context=None):
        '''Return self + other.'''
        return self._add_sub(other, False, context)

    def subtract(self, other, context=None):
        '''Return self - other.'''
        return self._add_sub(other, True, context)

    def _add_sub(self, other, is_subtract, context):
        precision = max(self._precision, other._precision)
        result = BigFloat(precision)
        lhs = self._parts()
        rhs = (other._sign ^ is_subtract, other._exponent, other._significand)
        if not rhs[2]:
            result._set_parts(*lhs, context)
            return result
        if not lhs[2]:
            result._set_parts(*rhs, context)
            return result

        # Put the operand of greater magnitude in LHS.  If the other is entirely below the
        # rounding position only its sign and non-zero-ness matter; substitute a small
        # value so that shifts stay proportional to the precision.
        if lhs[1] + lhs[2].bit_length() < rhs[1] + rhs[2].bit_length():
            lhs, rhs = rhs, lhs
        top = lhs[1] + lhs[2].bit_length()
        limit = top - precision - 3
        if rhs[1] + rhs[2].bit_length() < limit:
            rhs = (rhs[0], min(lhs[1], limit) - 1, 1)

        sign, exponent = lhs[0], min(lhs[1], rhs[1])
        lhs_sig = lhs[2] << (lhs[1] - exponent)
        rhs_sig = rhs[2] << (rhs[1] - exponent)
        if lhs[0] == rhs[0]:
            significand = lhs_sig + rhs_sig
        else:
            significand = lhs_sig - rhs_sig
            if significand < 0:
                sign = not sign
                significand = -significand

        result._set_parts(sign, exponent, significand, context)
        return result

    def multiply(self, other, context=None):
        '''Return self * other.'''
        result = BigFloat(max(self._precision, other._precision))
        result._set_parts(self._sign ^ other._sign, self._exponent + other._exponent,
                          self._significand * other._significand, context)
        return result

    def divide(self, other, context=None):
        '''Return self / other.  Signals DivisionByZero if other is zero.'''
        if not other._significand:
            DivisionByZero((OP_DIVIDE, self, other)).signal(context)
        result = BigFloat(max(self._precision, other._precision))
        result._set_ratio(self._sign ^ other._sign, self._exponent - other._exponent,
                          self._significand, other._significand, context)
        return result

    def floordiv(self, other, context=None):
        '''Return floor(self / other).'''
        if not other._significand:
            DivisionByZero((OP_FLOORDIV, self, other)).signal(context)
        return self._floor_divmod(other, context)[0]

    def remainder(self, other, context=None):
        '''Return the floored remainder self - other * floor(self / other).  It has the sign
        of other (or is zero).'''
        if not other._significand:
            DivisionByZero((OP_REMAINDER, self, other)).signal(context)
        return self._floor_divmod(other, context)[1]

    def divmod(self, other, context=None):
        '''Return the pair (self // other, self % other).'''
        if not other._significand:
            DivisionByZero((OP_REMAINDER, self, other)).signal(context)
        return self._floor_divmod(other, context)

    def _floor_divmod(self, other, context):
        '''The quotient is the exact integer floor(self / other); only the final results are
        rounded.'''
        precision = max(self._precision, other._precision)
        quotient = BigFloat(precision)
        remainder = BigFloat(precision)

        # |self| < |other|: the quotient is 0 or -1
        if self._exponent + self._significand.bit_length() < (
                other._exponent + other._significand.bit_length()):
            if not self._significand or self._sign == other._sign:
                remainder._set_parts(*self._parts(), context)
            else:
                quotient._set_parts(True, 0, 1, context)
                remainder = self.add(other, context)
            return quotient, remainder

        # Otherwise other's exponent exceeds ours by at most our significand's length
        exponent = min(self._exponent, other._exponent)
        lhs = self._significand << (self._exponent - exponent)
        rhs = other._significand << (other._exponent - exponent)
        q, r = divmod(-lhs if self._sign else lhs, -rhs if other._sign else rhs)
        quotient._set_parts(q < 0, 0, abs(q), context)
        remainder._set_parts(r < 0, exponent, abs(r), context)
        return quotient, remainder

    def abs_sub(self, other, context=None):
        '''Return |self - other|.'''
        result = self.subtract(other, context)
        result._sign = False
        return result

    def reldiff(self, other, context=None):
        '''Return the relative difference |self - other| / self, or |self - other| if self is
        zero.  Note this is not symmetric in its operands.'''
        difference = self.abs_sub(other, context)
        if not self._significand:
            return difference
        return difference.divide(self, context)

    def sqrt(self, context=None):
        '''Return the square root at our precision.  Signals InvalidSqrt unless we are strictly
        positive.'''
        if self._sign or not self._significand:
            InvalidSqrt((OP_SQRT, self)).signal(context)

        # Shift the significand so its integer square root has at least two bits more than
        # the precision, keeping the exponent even.
        significand, exponent = self._significand, self._exponent
        lshift = max(0, 2 * (self._precision + 2) - significand.bit_length())
        if (exponent - lshift) & 1:
            lshift += 1
        significand <<= lshift
        exponent -= lshift

        root = isqrt(significand)
        is_exact = root * root == significand
        result = BigFloat(self._precision)
        # An extra sticky bit carries the inexactness into rounding
        result._set_parts(False, exponent // 2 - 1, (root << 1) | (not is_exact), context)
        return result

    ##
    ## Rounding to integers.  These ignore the context's rounding mode.
    ##

    def _to_integral(self, rounding):
        result = BigFloat(self._precision)
        if self._exponent >= 0:
            result._set_parts(*self._parts())
        else:
            result._set_parts(self._sign, 0, self._to_int(rounding))
        return result

    def _to_int(self, rounding):
        '''Return the absolute value of our value rounded to an integer.'''
        if self._exponent >= 0:
            return self._significand << self._exponent
        value, lost_fraction = shift_right(self._significand, -self._exponent)
        if round_up(rounding, lost_fraction, self._sign, bool(value & 1)):
            value += 1
        return value

    def abs(self):
        '''Return |self| at our precision.'''
        return BigFloat._from_parts(self._precision, (False, self._exponent, self._significand))

    def ceil(self):
        return self._to_integral(ROUND_CEILING)

    def floor(self):
        return self._to_integral(ROUND_FLOOR)

    def trunc(self):
        return self._to_integral(ROUND_DOWN)

    ##
    ## Comparisons
    ##

    def compare(self, other):
        '''Compare by numeric value, ignoring precision.  other can be a BigFloat, int,
        Rational, float or Decimal.  Returns UNORDERED if other is a NaN.'''
        if isinstance(other, BigFloat):
            return compare_parts(self._parts(), other._parts())
        if isinstance(other, float):
            if isnan(other):
                return Compare.UNORDERED
            if isinf(other):
                return Compare.LESS_THAN if other > 0 else Compare.GREATER_THAN
        elif isinstance(other, Decimal):
            if other.is_nan():
                return Compare.UNORDERED
            if other.is_infinite():
                return Compare.GREATER_THAN if other.is_signed() else Compare.LESS_THAN
        elif not isinstance(other, Rational):
            raise TypeError(f'cannot compare with a value of type {type(other).__name__}')

        other = Fraction(other)
        a, b = self.as_integer_ratio()
        diff = a * other.denominator - b * other.numerator
        if diff > 0:
            return Compare.GREATER_THAN
        if diff < 0:
            return Compare.LESS_THAN
        return Compare.EQUAL

    def _compare_any(self, other):
        if isinstance(other, (BigFloat, Rational, float, Decimal)):
            return self.compare(other)
        return None

    def __eq__(self, other):
        compare = self._compare_any(other)
        if compare is None:
            return NotImplemented
        return compare == Compare.EQUAL

    def __ne__(self, other):
        compare = self._compare_any(other)
        if compare is None:
            return NotImplemented
        return compare != Compare.EQUAL

    def __lt__(self, other):
        compare = self._compare_any(other)
        if compare is None:
            return NotImplemented
        return compare == Compare.LESS_THAN

    def __le__(self, other):
        compare = self._compare_any(other)
        if compare is None:
            return NotImplemented
        return compare in (Compare.EQUAL, Compare.LESS_THAN)

    def __ge__(self, other):
        compare = self._compare_any(other)
        if compare is None:
            return NotImplemented
        return compare in (Compare.EQUAL, Compare.GREATER_THAN)

    def __gt__(self, other):
        compare = self._compare_any(other)
        if compare is None:
            return NotImplemented
        return compare == Compare.GREATER_THAN

    ##
    ## Python support - make it feel like a Python numeric data type.
    ##

    def as_integer_ratio(self):
        '''Return a pair (n, d) of integers that represent the value as a fraction in lowest
        terms and with a positive denominator.'''
        numerator = -self._significand if self._sign else self._significand
        if self._exponent >= 0:
            return numerator << self._exponent, 1
        return numerator, 1 << -self._exponent

    def __bool__(self):
        return bool(self._significand)

    def __int__(self):
        return self.__trunc__()

    def __float__(self):
        # int / int true division is correctly rounded
        numerator, denominator = self.as_integer_ratio()
        return numerator / denominator

    def __trunc__(self):
        value = self._to_int(ROUND_DOWN)
        return -value if self._sign else value

    def __floor__(self):
        value = self._to_int(ROUND_FLOOR)
        return -value if self._sign else value

    def __ceil__(self):
        value = self._to_int(ROUND_CEILING)
        return -value if self._sign else value

    def __round__(self, ndigits=None):
        '''If ndigits is None, round to an integer under ROUND_HALF_EVEN.  Otherwise round to
        ndigits decimal places with ROUND_HALF_EVEN and the result is a BigFloat of our
        precision.
        '''
        if ndigits is None:
            value = self._to_int(ROUND_HALF_EVEN)
            return -value if self._sign else value
        if not isinstance(ndigits, int):
            raise TypeError('ndigits must be an integer')
        return BigFloat.from_fraction(round(Fraction(*self.as_integer_ratio()), ndigits),
                                      self._precision)

    def __neg__(self):
        '''Return this value with the opposite sign at our precision.'''
        if not self._significand:
            return BigFloat(self._precision)
        return BigFloat._from_parts(self._precision,
                                    (not self._sign, self._exponent, self._significand))

    def __pos__(self):
        return self.copy()

    def __abs__(self):
        return self.abs()

    def _coerce(self, other):
        '''Return other as a BigFloat.  Values of other types are converted at our precision.
        Returns None if other is of an unsupported type.'''
        if isinstance(other, BigFloat):
            return other
        if isinstance(other, (int, Rational, float, Decimal)):
            return BigFloat.from_value(other, self._precision)
        return None

    def _binary_op(self, other, operation, reflected=False):
        other = self._coerce(other)
        if other is None:
            return NotImplemented
        if reflected:
            return operation(other, self)
        return operation(self, other)

    def _inplace_op(self, other, operation):
        '''Compute the result at the greater precision then assign it into self at our own
        precision.'''
        result = self._binary_op(other, operation)
        if result is NotImplemented:
            return result
        self.assign(result)
        return self

    def __add__(self, other):
        return self._binary_op(other, BigFloat.add)

    def __sub__(self, other):
        return self._binary_op(other, BigFloat.subtract)

    def __mul__(self, other):
        return self._binary_op(other, BigFloat.multiply)

    def __truediv__(self, other):
        return self._binary_op(other, BigFloat.divide)

    def __mod__(self, other):
        return self._binary_op(other, BigFloat.remainder)

    def __floordiv__(self, other):
        return self._binary_op(other, BigFloat.floordiv)

    def __divmod__(self, other):
        return self._binary_op(other, BigFloat.divmod)

    def __radd__(self, other):
        return self._binary_op(other, BigFloat.add, True)

    def __rsub__(self, other):
        return self._binary_op(other, BigFloat.subtract, True)

    def __rmul__(self, other):
        return self._binary_op(other, BigFloat.multiply, True)

    def __rtruediv__(self, other):
        return self._binary_op(other, BigFloat.divide, True)

    def __rmod__(self, other):
        return self._binary_op(other, BigFloat.remainder, True)

    def __rfloordiv__(self, other):
        return self._binary_op(other, BigFloat.floordiv, True)

    def __rdivmod__(self, other):
        return self._binary_op(other, BigFloat.divmod, True)

    def __iadd__(self, other):
        return self._inplace_op(other, BigFloat.add)

    def __isub__(self, other):
        return self._inplace_op(other, BigFloat.subtract)

    def __imul__(self, other):
        return self._inplace_op(other, BigFloat.multiply)

    def __itruediv__(self, other):
        return self._inplace_op(other, BigFloat.divide)

    def __imod__(self, other):
        return self._inplace_op(other, BigFloat.remainder)

    def __ifloordiv__(self, other):
        return self._inplace_op(other, BigFloat.floordiv)


#
# Useful internal helper routines
#

def check_precision(precision):
    '''Return precision if it is a valid number of bits.'''
    if not isinstance(precision, int):
        raise TypeError('precision must be an integer')
    if precision < 1:
        raise ValueError(f'precision must be at least 1 bit; got {precision}')
    return precision


def check_radix(radix):
    '''Return the absolute value of radix, which must lie in [2, 62].'''
    if not isinstance(radix, int):
        raise TypeError('radix must be an integer')
    base = abs(radix)
    if not MIN_RADIX <= base <= MAX_RADIX:
        raise ValueError(f'radix must be in [{MIN_RADIX}, {MAX_RADIX}]; got {radix}')
    return base


def significant_digits(precision, base):
    '''The number of digits in base that distinguish all values of the given precision.'''
    return 2 + int(precision / log2(base))


def lost_bits_from_rshift(significand, bits):
    '''Return what the lost bits would be were the significand shifted right the given number
    of bits.
    '''
    if bits <= 0:
        return LF_EXACTLY_ZERO
    # Prevent over-large shifts consuming memory
    bits = min(bits, significand.bit_length() + 2)
    bit_mask = 1 << (bits - 1)
    first_bit = bool(significand & bit_mask)
    second_bit = bool(significand & (bit_mask - 1))
    return first_bit * 2 + second_bit


def shift_right(significand, bits):
    '''Return the significand shifted right a given number of bits, and the fraction that is
    lost doing so.
    '''
    return significand >> bits, lost_bits_from_rshift(significand, bits)


def lost_fraction_from_remainder(rem, divisor):
    '''Return the lost fraction of a division with remainder rem.'''
    if rem == 0:
        return LF_EXACTLY_ZERO
    rem *= 2
    if rem < divisor:
        return LF_LESS_THAN_HALF
    if rem == divisor:
        return LF_EXACTLY_HALF
    return LF_MORE_THAN_HALF


def round_up(rounding, lost_fraction, sign, is_odd):
    '''Return True if, when an operation is inexact, the result should be rounded up (i.e.,
    away from zero by incrementing the significand).

    sign is the sign of the number, and is_odd indicates if the LSB of the new
    significand is set, which is needed for ties-to-even rounding.
    '''
    if lost_fraction == LF_EXACTLY_ZERO:
        return False

    if rounding == ROUND_HALF_EVEN:
        if lost_fraction == LF_EXACTLY_HALF:
            return is_odd
        return lost_fraction == LF_MORE_THAN_HALF
    if rounding == ROUND_CEILING:
        return not sign
    if rounding == ROUND_FLOOR:
        return sign
    if rounding == ROUND_DOWN:
        return False
    if rounding == ROUND_UP:
        return True
    if rounding == ROUND_HALF_DOWN:
        return lost_fraction == LF_MORE_THAN_HALF
    return lost_fraction != LF_LESS_THAN_HALF


def normalize(sign, exponent, significand, precision, context):
    '''Return the canonical (sign, exponent, significand) triple of the value

           ± 2^exponent * significand

    rounded by the context to precision bits.  Raises the inexact flag if bits are lost.
    '''
    if significand == 0:
        return False, 0, 0

    rshift = significand.bit_length() - precision
    if rshift > 0:
        significand, lost_fraction = shift_right(significand, rshift)
        exponent += rshift
        if lost_fraction != LF_EXACTLY_ZERO:
            context.flags |= Flags.INEXACT
            # Overflowing the precision by one bit leaves a power of two; stripping the
            # trailing zeroes below returns it to range.
            if round_up(context.rounding, lost_fraction, sign, bool(significand & 1)):
                significand += 1

    # Strip trailing zeroes
    zeroes = (significand & -significand).bit_length() - 1
    return sign, exponent + zeroes, significand >> zeroes


def normalize_ratio(sign, exponent, numerator, denominator, precision, context):
    '''As for normalize() but for the value ± 2^exponent * numerator / denominator, where
    numerator is non-negative and denominator positive.
    '''
    if numerator == 0:
        return False, 0, 0

    # Scale so the quotient has at least precision + 2 bits
    lshift = precision + 2 - (numerator.bit_length() - denominator.bit_length())
    if lshift > 0:
        numerator <<= lshift
    else:
        denominator <<= -lshift
    quotient, rem = divmod(numerator, denominator)
    # Append a sticky bit so that rounding sees a non-zero remainder
    quotient = (quotient << 1) | (rem != 0)
    return normalize(sign, exponent - lshift - 1, quotient, precision, context)


def truncated_product(lhs, rhs, bits, round_upwards):
    '''Multiply two (significand, exponent) pairs keeping at most bits significand bits.
    The discarded bits are truncated, or rounded upwards if round_upwards.'''
    significand = lhs[0] * rhs[0]
    exponent = lhs[1] + rhs[1]
    shift = significand.bit_length() - bits
    if shift <= 0:
        return significand, exponent
    truncated = significand >> shift
    if round_upwards and truncated << shift != significand:
        truncated += 1
    return truncated, exponent + shift


def power_bounds(base, power, bits):
    '''Return a pair of (significand, exponent) pairs bracketing base^power from below and
    above, for a positive power.'''
    lower = upper = (1, 0)
    square_lower = square_upper = (base, 0)
    while True:
        if power & 1:
            lower = truncated_product(lower, square_lower, bits, False)
            upper = truncated_product(upper, square_upper, bits, True)
        power >>= 1
        if not power:
            return lower, upper
        square_lower = truncated_product(square_lower, square_lower, bits, False)
        square_upper = truncated_product(square_upper, square_upper, bits, True)


def scale_by_power(sign, mantissa, base, power, precision, context):
    '''Return the canonical (sign, exponent, significand) triple of ±mantissa * base^power
    rounded by the context to precision bits.

    Large powers are not computed exactly.  Instead base^power is bracketed with ever more
    bits until both bounds round to the same value.
    '''
    if not mantissa:
        return False, 0, 0

    twos = (base & -base).bit_length() - 1
    odd = base >> twos
    exponent = twos * power
    if odd == 1 or abs(power) <= (EXACT_POWER_BITS + precision) / log2(odd):
        if power >= 0:
            return normalize(sign, exponent, mantissa * odd ** power, precision, context)
        return normalize_ratio(sign, exponent, mantissa, odd ** -power, precision, context)

    # odd^|power| has more than precision bits so the result is inexact.  The bounds
    # tighten until they agree, or become exact.
    logger.debug('bracketing %d^%d to %d bits', base, power, precision)
    scratch = Context(rounding=context.rounding)
    bits = precision + 64 + 2 * abs(power).bit_length()
    while True:
        lower, upper = power_bounds(odd, abs(power), bits)
        if power > 0:
            low = normalize(sign, exponent + lower[1], mantissa * lower[0], precision, scratch)
            high = normalize(sign, exponent + upper[1], mantissa * upper[0], precision, scratch)
        else:
            low = normalize_ratio(sign, exponent - upper[1], mantissa, upper[0], precision,
                                  scratch)
            high = normalize_ratio(sign, exponent - lower[1], mantissa, lower[0], precision,
                                   scratch)
        if low == high:
            context.flags |= Flags.INEXACT
            return low
        bits *= 2


def compare_parts(lhs, rhs):
    '''Compare two canonical (sign, exponent, significand) triples by value.'''
    lhs_sign, lhs_exp, lhs_sig = lhs
    rhs_sign, rhs_exp, rhs_sig = rhs
    if not lhs_sig or not rhs_sig or lhs_sign != rhs_sign:
        lhs_key = 0 if not lhs_sig else -1 if lhs_sign else 1
        rhs_key = 0 if not rhs_sig else -1 if rhs_sign else 1
        return Compare((lhs_key > rhs_key) - (lhs_key < rhs_key))

    # Same sign, both non-zero.  Compare magnitudes by the position of the top bit first,
    # then by the significands aligned to a common exponent.
    lhs_top = lhs_exp + lhs_sig.bit_length()
    rhs_top = rhs_exp + rhs_sig.bit_length()
    if lhs_top != rhs_top:
        magnitude = 1 if lhs_top > rhs_top else -1
    else:
        exponent = min(lhs_exp, rhs_exp)
        lhs_sig <<= lhs_exp - exponent
        rhs_sig <<= rhs_exp - exponent
        magnitude = (lhs_sig > rhs_sig) - (lhs_sig < rhs_sig)
    return Compare(-magnitude if lhs_sign else magnitude)


def radix_exponent(numerator, denominator, base):
    '''Return the exponent e such that base^(e-1) <= numerator / denominator < base^e.'''
    log2_value = numerator.bit_length() - denominator.bit_length()
    exponent = int(log2_value // log2(base)) + 1
    while numerator >= denominator * Fraction(base) ** exponent:
        exponent += 1
    while numerator < denominator * Fraction(base) ** (exponent - 1):
        exponent -= 1
    return exponent


DIGITS_LOWER = '0123456789abcdefghijklmnopqrstuvwxyz'
DIGITS_UPPER = DIGITS_LOWER.upper()
DIGITS_62 = DIGITS_UPPER + DIGITS_LOWER[10:]


def digit_alphabet(base, upper_case):
    if base > 36:
        return DIGITS_62
    return DIGITS_UPPER if upper_case else DIGITS_LOWER


def digit_values(base):
    '''Return a dictionary mapping digit characters to their values in base.'''
    if base > 36:
        return {char: value for value, char in enumerate(DIGITS_62[:base])}
    values = {char: value for value, char in enumerate(DIGITS_LOWER[:base])}
    values.update((char, value) for value, char in enumerate(DIGITS_UPPER[:base]))
    return values


def int_to_digits(value, base, alphabet):
    '''Return the non-negative integer value as a string of digits in base.'''
    # str() refuses very long decimal conversions
    if base == 10 and value.bit_length() <= MAX_STR_BITS:
        return str(value)
    digits = []
    while value:
        value, digit = divmod(value, base)
        digits.append(alphabet[digit])
    return ''.join(reversed(digits)) or '0'


def digits_to_int(text, base, values):
    if base <= 36 and len(text) <= MAX_STR_DIGITS:
        return int(text, base)
    result = 0
    for char in text:
        result = result * base + values[char]
    return result


def parse_radix_string(text, radix):
    '''Parse text as a number in radix.  Return a tuple (sign, mantissa, power, base) where
    the value is ±mantissa * base^power.'''
    if not isinstance(text, str):
        raise TypeError('text must be a string')
    base = check_radix(radix)
    # Strings cannot portably hold embedded NULs
    if '\0' in text:
        logger.debug('rejecting string with embedded NUL')
        raise ParseFloatError()

    values = digit_values(base)
    exp_base = 10 if radix < 0 else base
    exp_values = values if exp_base == base else digit_values(10)
    markers = '@eE' if base <= 10 else '@'

    string = text.lstrip()
    sign = False
    if string[:1] in ('-', '+'):
        sign = string[0] == '-'
        string = string[1:]

    mantissa, exp_text = string, None
    for pos, char in enumerate(string):
        if char in markers:
            mantissa, exp_text = string[:pos], string[pos + 1:]
            break

    int_part, point, frac_part = mantissa.partition('.')
    digits = int_part + frac_part
    if not digits or any(char not in values for char in digits):
        logger.debug('invalid mantissa in %r for radix %d', text, radix)
        raise ParseFloatError()

    power = -len(frac_part)
    if exp_text is not None:
        exp_sign = 1
        if exp_text[:1] in ('-', '+'):
            exp_sign = -1 if exp_text[0] == '-' else 1
            exp_text = exp_text[1:]
        if not exp_text or any(char not in exp_values for char in exp_text):
            logger.debug('invalid exponent in %r for radix %d', text, radix)
            raise ParseFloatError()
        power += exp_sign * digits_to_int(exp_text, exp_base, exp_values)

    return sign, digits_to_int(digits, base, values), power, base


#
# Exported functions
#

DefaultContext = Context()
tls = threading.local()


def get_context():
    '''Return the current thread's context, a copy of DefaultContext on first use.'''
    try:
        return tls.context
    except AttributeError:
        tls.context = DefaultContext.copy()
        return tls.context


def set_context(context):
    '''Sets the current thread's context to context (not a copy of it).'''
    if not isinstance(context, Context):
        raise TypeError('context must be a Context instance')
    tls.context = context


class LocalContext:
    '''A context manager that will set the current context for the active thread to a copy of
    context on entry to the with-statement and restore the previous context on exit.  If
    no context is specified a copy of the current context is taken instead.
    '''

    def __init__(self, context=None):
        self.saved_context = None
        self.context_to_set = context

    def __enter__(self):
        self.saved_context = get_context()
        context = (self.context_to_set or self.saved_context).copy()
        set_context(context)
        return context

    def __exit__(self, etype, value, traceback):
        set_context(self.saved_context)


local_context = LocalContext
