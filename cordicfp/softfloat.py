#
# Correctly-rounded IEEE-754 binary32 arithmetic carried out on integers
#

import math
import threading
from contextlib import contextmanager
from enum import IntFlag, IntEnum

import attr

from .fields import (check_bits, decode, encode, FloatClass, SIGN_SHIFT, EXPONENT_SHIFT,
                     EXPONENT_MASK, MANTISSA_MASK)


__all__ = ('Context', 'DefaultContext', 'get_context', 'set_context', 'local_context',
           'Flags', 'HandlerKind', 'Binary32',
           'IEEEError', 'Invalid', 'SignallingNaNOperand', 'InvalidAdd', 'InvalidMultiply',
           'InvalidDivide', 'DivisionByZero', 'Inexact', 'Overflow', 'Underflow',
           'UnderflowExact', 'UnderflowInexact',
           'ROUND_CEILING', 'ROUND_FLOOR', 'ROUND_DOWN', 'ROUND_UP',
           'ROUND_HALF_EVEN', 'ROUND_HALF_UP', 'ROUND_HALF_DOWN',
           'add', 'subtract', 'multiply', 'divide', 'scaleb', 'negate')


ROUND_CEILING = 'ROUND_CEILING'
ROUND_FLOOR = 'ROUND_FLOOR'
ROUND_DOWN = 'ROUND_DOWN'
ROUND_UP = 'ROUND_UP'
ROUND_HALF_EVEN = 'ROUND_HALF_EVEN'
ROUND_HALF_DOWN = 'ROUND_HALF_DOWN'
ROUND_HALF_UP = 'ROUND_HALF_UP'

OP_ADD = 'add'
OP_SUBTRACT = 'subtract'
OP_MULTIPLY = 'multiply'
OP_DIVIDE = 'divide'
OP_SCALEB = 'scaleb'
OP_FROM_FLOAT = 'from_float'


class Flags(IntFlag):
    INVALID     = 0x01
    DIV_BY_ZERO = 0x02
    OVERFLOW    = 0x04
    UNDERFLOW   = 0x08
    INEXACT     = 0x10


# Finite values are handled unpacked as sign, exponent and an integer significand of at
# most PRECISION bits:  value = (-1)^sign * significand * 2^exponent
PRECISION = 24
E_MAX = 127
E_MIN = -126
E_BIAS = 1 - E_MIN
INT_BIT = 1 << (PRECISION - 1)
QUIET_BIT = 1 << (PRECISION - 2)
# Adding FIELD_OFFSET to the exponent of a normal significand gives its exponent field
FIELD_OFFSET = E_BIAS + PRECISION - 1
MIN_EXPONENT = 1 - FIELD_OFFSET
MAX_EXPONENT = EXPONENT_MASK - 1 - FIELD_OFFSET


#
# Signals
#

class IEEEError(ArithmeticError):
    '''Base class of the arithmetic signals.

    Constructed with two arguments: op_tuple, the operation name followed by its
    operands, and the Binary32 result that default handling delivers.
    '''

    flag = 0

    @property
    def op_tuple(self):
        return self.args[0]

    @property
    def default_result(self):
        return self.args[1]

    def signal(self, context=None):
        '''Handle this signal as the context directs and return the delivered result.'''
        context = context or get_context()
        kind = context.handler(type(self))

        if kind != HandlerKind.NO_FLAG:
            context.flags |= self.flag
            if kind == HandlerKind.RECORD_EXCEPTION and self.flag:
                context.exceptions.append(self)
        if kind == HandlerKind.RAISE:
            raise self
        return self.default_result


class Invalid(IEEEError):
    '''The operation has no meaningful result.  Delivers the canonical quiet NaN unless
    another result is given.'''

    flag = Flags.INVALID

    def __init__(self, op_tuple, result=None):
        if result is None:
            result = Binary32.make_nan(False, False, 0)
        super().__init__(op_tuple, result)


class SignallingNaNOperand(Invalid):
    pass


class InvalidAdd(Invalid):
    '''Infinities of opposite sign were added.'''


class InvalidMultiply(Invalid):
    '''Zero times infinity.'''


class InvalidDivide(Invalid):
    '''Zero over zero or infinity over infinity.'''


class DivisionByZero(IEEEError, ZeroDivisionError):
    '''A finite non-zero dividend with a zero divisor.  Delivers a signed infinity.'''

    flag = Flags.DIV_BY_ZERO


class Inexact(IEEEError):

    flag = Flags.INEXACT


class Overflow(IEEEError):
    '''The rounded result exceeds the largest finite magnitude.  Always inexact too.'''

    flag = Flags.OVERFLOW

    def signal(self, context=None):
        return Inexact(self.op_tuple, super().signal(context)).signal(context)


class Underflow(IEEEError):
    '''The result is tiny, i.e. below the smallest normal magnitude.'''


class UnderflowExact(Underflow):
    # Exact tiny results raise no flag under default handling
    flag = 0


class UnderflowInexact(Underflow):

    flag = Flags.UNDERFLOW

    def signal(self, context=None):
        return Inexact(self.op_tuple, super().signal(context)).signal(context)


class HandlerKind(IntEnum):
    # Deliver the default result and raise the flag
    DEFAULT = 0
    # Deliver the default result silently
    NO_FLAG = 1
    # As DEFAULT, also appending the signal to the context's exceptions list
    RECORD_EXCEPTION = 3
    # Raise the signal as a Python exception
    RAISE = 7


@attr.s(slots=True, eq=False, repr=False)
class Context:
    '''Rounding mode, sticky status flags, tininess detection and per-signal handlers for
    the operations run under it.'''

    rounding = attr.ib(default=ROUND_HALF_EVEN, kw_only=True)
    flags = attr.ib(default=0, kw_only=True)
    tininess_after = attr.ib(default=True, kw_only=True)
    handlers = attr.ib(factory=dict, init=False)
    exceptions = attr.ib(factory=list, init=False)

    def copy(self):
        result = attr.evolve(self)
        result.handlers = dict(self.handlers)
        result.exceptions = list(self.exceptions)
        return result

    def set_handler(self, exc_classes, kind):
        if not isinstance(exc_classes, (tuple, list)):
            exc_classes = (exc_classes, )
        for exc_class in exc_classes:
            if not issubclass(exc_class, IEEEError):
                raise TypeError(f'{exc_class.__name__} is not a subclass of IEEEError')
        if not isinstance(kind, HandlerKind):
            raise TypeError('kind must be a HandlerKind instance')
        self.handlers.update((exc_class, kind) for exc_class in exc_classes)

    def handler(self, exc_class):
        '''Return the HandlerKind for a signal class; the most derived class with a handler
        set wins.'''
        if not issubclass(exc_class, IEEEError):
            raise TypeError(f'{exc_class.__name__} is not a subclass of IEEEError')
        for cls in exc_class.__mro__:
            if cls in self.handlers:
                return self.handlers[cls]
        return HandlerKind.DEFAULT

    def __repr__(self):
        return (f'<Context rounding={self.rounding} flags={self.flags!r} '
                f'tininess_after={self.tininess_after}>')


# What fraction of the last retained bit's weight was discarded by a right shift.  These
# play the part of the guard and sticky bits.
LF_EXACTLY_ZERO = 0
LF_LESS_THAN_HALF = 1
LF_EXACTLY_HALF = 2
LF_MORE_THAN_HALF = 3


def _check_bits(_instance, _attribute, bits):
    check_bits(bits)


@attr.s(slots=True, frozen=True, order=False, repr=False)
class Binary32:
    '''An immutable binary32 value, held as its 32-bit interchange encoding.'''

    bits = attr.ib(validator=_check_bits)

    @classmethod
    def from_bits(cls, bits):
        return cls(bits)

    @classmethod
    def make_zero(cls, sign):
        return cls(encode(int(sign), 0, 0))

    @classmethod
    def make_one(cls, sign):
        return cls(encode(int(sign), E_BIAS, 0))

    @classmethod
    def make_infinity(cls, sign):
        return cls(encode(int(sign), EXPONENT_MASK, 0))

    @classmethod
    def make_largest_finite(cls, sign):
        return cls(encode(int(sign), EXPONENT_MASK - 1, MANTISSA_MASK))

    @classmethod
    def make_smallest_subnormal(cls, sign):
        return cls(encode(int(sign), 0, 1))

    @classmethod
    def make_nan(cls, sign, is_signalling, payload):
        '''Return a NaN.  Payload bits that do not fit below the quiet bit are dropped, and a
        signalling NaN gets a payload of at least 1 so it does not encode an infinity.'''
        if payload < 0:
            raise ValueError(f'NaN payload cannot be negative: {payload}')
        payload &= QUIET_BIT - 1
        if is_signalling:
            payload = max(payload, 1)
        else:
            payload |= QUIET_BIT
        return cls(encode(int(sign), EXPONENT_MASK, payload))

    @classmethod
    def from_float(cls, value, context=None):
        '''Convert a Python float, rounding under the context.'''
        if not isinstance(value, float):
            raise TypeError('from_float requires a float')
        sign = math.copysign(1.0, value) < 0
        if math.isnan(value):
            return cls.make_nan(sign, False, 0)
        if math.isinf(value):
            return cls.make_infinity(sign)
        numerator, denominator = abs(value).as_integer_ratio()
        return _round_and_pack(sign, 1 - denominator.bit_length(), numerator,
                               (OP_FROM_FLOAT, value), context)

    def to_bits(self):
        return self.bits

    @property
    def sign(self):
        return bool(self.bits >> SIGN_SHIFT)

    @property
    def float_class(self):
        return decode(self.bits).float_class

    @property
    def _field(self):
        return (self.bits >> EXPONENT_SHIFT) & EXPONENT_MASK

    @property
    def _mantissa(self):
        return self.bits & MANTISSA_MASK

    def unpack(self):
        '''Return (sign, exponent, significand) of a finite value.'''
        assert self.is_finite()
        if self._field == 0:
            return self.sign, MIN_EXPONENT, self._mantissa
        return self.sign, self._field - FIELD_OFFSET, self._mantissa | INT_BIT

    def is_zero(self):
        return not self.bits & ~(1 << SIGN_SHIFT)

    def is_subnormal(self):
        return self._field == 0 and self._mantissa != 0

    def is_normal(self):
        return 0 < self._field < EXPONENT_MASK

    def is_finite(self):
        return self._field != EXPONENT_MASK

    def is_infinite(self):
        return self._field == EXPONENT_MASK and self._mantissa == 0

    def is_nan(self):
        return self._field == EXPONENT_MASK and self._mantissa != 0

    def is_snan(self):
        return self.is_nan() and not self.bits & QUIET_BIT

    def copy_abs(self):
        return Binary32(self.bits & ~(1 << SIGN_SHIFT))

    def copy_negate(self):
        return Binary32(self.bits ^ (1 << SIGN_SHIFT))

    def to_string(self):
        '''Return the value with a hexadecimal significand, e.g. -0x1.800000p+0.'''
        sign = '-' if self.sign else ''
        float_class = self.float_class
        if float_class == FloatClass.NAN:
            return sign + ('NaN' if self.bits & QUIET_BIT else 'sNaN')
        if float_class == FloatClass.INFINITY:
            return sign + 'Infinity'
        if float_class == FloatClass.ZERO:
            return sign + '0x0p+0'
        if float_class == FloatClass.SUBNORMAL:
            lead, exponent = 0, E_MIN
        else:
            lead, exponent = 1, self._field - E_BIAS
        # One extra bit makes the 23 fraction bits six whole hex digits
        return f'{sign}0x{lead}.{self._mantissa << 1:06x}p{exponent:+d}'

    def __repr__(self):
        return f'Binary32(0x{self.bits:08X})'

    def __str__(self):
        return self.to_string()

    def __float__(self):
        if self.is_nan():
            return -math.nan if self.sign else math.nan
        if self.is_infinite():
            return -math.inf if self.sign else math.inf
        sign, exponent, significand = self.unpack()
        magnitude = math.ldexp(significand, exponent)
        return -magnitude if sign else magnitude

    def __neg__(self):
        return self.copy_negate()

    def __abs__(self):
        return self.copy_abs()

    def __add__(self, other):
        if not isinstance(other, Binary32):
            return NotImplemented
        return add(self, other)

    def __sub__(self, other):
        if not isinstance(other, Binary32):
            return NotImplemented
        return subtract(self, other)

    def __mul__(self, other):
        if not isinstance(other, Binary32):
            return NotImplemented
        return multiply(self, other)

    def __truediv__(self, other):
        if not isinstance(other, Binary32):
            return NotImplemented
        return divide(self, other)


#
# Operations
#

def _propagate_nan(op_tuple, context):
    '''Deliver the leftmost NaN operand, made quiet.  A signalling NaN operand anywhere
    signals SignallingNaNOperand.'''
    nans = [operand for operand in op_tuple[1:]
            if isinstance(operand, Binary32) and operand.is_nan()]
    result = Binary32(nans[0].bits | QUIET_BIT)
    if any(nan.is_snan() for nan in nans):
        return SignallingNaNOperand(op_tuple, result).signal(context)
    return result


def _round_and_pack(sign, exponent, significand, op_tuple, context):
    '''Round the exact value ±significand * 2^exponent to binary32 under the context,
    signalling as needed.'''
    if significand == 0:
        return Binary32.make_zero(sign)
    context = context or get_context()

    # Keep PRECISION bits, or fewer where that would need an exponent below MIN_EXPONENT
    rshift = max(significand.bit_length() - PRECISION, MIN_EXPONENT - exponent)
    significand, lost_fraction = shift_right(significand, rshift)
    exponent += rshift
    tiny_before_rounding = significand < INT_BIT

    if round_up(context.rounding, lost_fraction, sign, bool(significand & 1)):
        significand += 1
        if significand.bit_length() > PRECISION:
            significand >>= 1
            exponent += 1

    if exponent > MAX_EXPONENT:
        if round_up(context.rounding, LF_MORE_THAN_HALF, sign, False):
            result = Binary32.make_infinity(sign)
        else:
            result = Binary32.make_largest_finite(sign)
        return Overflow(op_tuple, result).signal(context)

    field = exponent + FIELD_OFFSET if significand >= INT_BIT else 0
    result = Binary32(encode(int(sign), field, significand & MANTISSA_MASK))

    is_tiny = significand < INT_BIT if context.tininess_after else tiny_before_rounding
    is_inexact = lost_fraction != LF_EXACTLY_ZERO
    if is_tiny:
        return (UnderflowInexact if is_inexact else UnderflowExact)(
            op_tuple, result).signal(context)
    if is_inexact:
        return Inexact(op_tuple, result).signal(context)
    return result


def add(lhs, rhs, context=None):
    return _add_sub(OP_ADD, lhs, rhs, context)


def subtract(lhs, rhs, context=None):
    return _add_sub(OP_SUBTRACT, lhs, rhs, context)


def _add_sub(operation, lhs, rhs, context):
    context = context or get_context()
    op_tuple = (operation, lhs, rhs)
    # The sign rhs contributes with
    rhs_sign = rhs.sign ^ (operation == OP_SUBTRACT)

    if lhs.is_nan() or rhs.is_nan():
        return _propagate_nan(op_tuple, context)
    if lhs.is_infinite():
        if rhs.is_infinite() and rhs_sign != lhs.sign:
            return InvalidAdd(op_tuple).signal(context)
        return lhs
    if rhs.is_infinite():
        return Binary32.make_infinity(rhs_sign)

    lhs_sign, lhs_exponent, lhs_sig = lhs.unpack()
    _, rhs_exponent, rhs_sig = rhs.unpack()
    # Align both significands to the smaller exponent; the sum is then exact
    exponent = min(lhs_exponent, rhs_exponent)
    lhs_sig <<= lhs_exponent - exponent
    rhs_sig <<= rhs_exponent - exponent
    total = (-lhs_sig if lhs_sign else lhs_sig) + (-rhs_sig if rhs_sign else rhs_sig)

    if total:
        sign = total < 0
    elif lhs_sign == rhs_sign:
        # Like-signed zeroes
        sign = lhs_sign
    else:
        # An exact zero sum is negative only when rounding towards -infinity
        sign = context.rounding == ROUND_FLOOR
    return _round_and_pack(sign, exponent, abs(total), op_tuple, context)


def multiply(lhs, rhs, context=None):
    context = context or get_context()
    op_tuple = (OP_MULTIPLY, lhs, rhs)
    sign = lhs.sign ^ rhs.sign

    if lhs.is_nan() or rhs.is_nan():
        return _propagate_nan(op_tuple, context)
    if lhs.is_infinite() or rhs.is_infinite():
        if lhs.is_zero() or rhs.is_zero():
            return InvalidMultiply(op_tuple).signal(context)
        return Binary32.make_infinity(sign)

    _, lhs_exponent, lhs_sig = lhs.unpack()
    _, rhs_exponent, rhs_sig = rhs.unpack()
    return _round_and_pack(sign, lhs_exponent + rhs_exponent, lhs_sig * rhs_sig,
                           op_tuple, context)


def divide(lhs, rhs, context=None):
    context = context or get_context()
    op_tuple = (OP_DIVIDE, lhs, rhs)
    sign = lhs.sign ^ rhs.sign

    if lhs.is_nan() or rhs.is_nan():
        return _propagate_nan(op_tuple, context)
    if lhs.is_infinite():
        if rhs.is_infinite():
            return InvalidDivide(op_tuple).signal(context)
        return Binary32.make_infinity(sign)
    if rhs.is_infinite():
        return Binary32.make_zero(sign)
    if rhs.is_zero():
        if lhs.is_zero():
            return InvalidDivide(op_tuple).signal(context)
        return DivisionByZero(op_tuple, Binary32.make_infinity(sign)).signal(context)
    if lhs.is_zero():
        return Binary32.make_zero(sign)

    _, lhs_exponent, lhs_sig = lhs.unpack()
    _, rhs_exponent, rhs_sig = rhs.unpack()
    # Two bits beyond PRECISION in the quotient, plus a sticky bit for a non-zero remainder,
    # determine the rounding exactly
    shift = PRECISION + 2 + rhs_sig.bit_length() - lhs_sig.bit_length()
    quotient, remainder = divmod(lhs_sig << shift, rhs_sig)
    quotient = (quotient << 1) | bool(remainder)
    return _round_and_pack(sign, lhs_exponent - rhs_exponent - shift - 1, quotient,
                           op_tuple, context)


def scaleb(value, N, context=None):
    '''Return value * 2^N, correctly rounded.  Infinities are returned unchanged.'''
    if not isinstance(N, int):
        raise TypeError('scaleb requires an integer')
    context = context or get_context()
    op_tuple = (OP_SCALEB, value, N)

    if value.is_nan():
        return _propagate_nan(op_tuple, context)
    if value.is_infinite():
        return value
    sign, exponent, significand = value.unpack()
    return _round_and_pack(sign, exponent + N, significand, op_tuple, context)


def negate(value):
    '''Flip the sign bit.  Never signals, even for a signalling NaN.'''
    return value.copy_negate()


#
# Rounding helpers
#

def shift_right(significand, bits):
    '''Return the significand shifted right by bits (left if negative) and the lost fraction.'''
    if bits <= 0:
        return significand << -bits, LF_EXACTLY_ZERO
    lost = significand & ((1 << bits) - 1)
    half = 1 << (bits - 1)
    if lost == 0:
        lost_fraction = LF_EXACTLY_ZERO
    elif lost < half:
        lost_fraction = LF_LESS_THAN_HALF
    elif lost == half:
        lost_fraction = LF_EXACTLY_HALF
    else:
        lost_fraction = LF_MORE_THAN_HALF
    return significand >> bits, lost_fraction


# Whether a tie rounds away from zero, given whether the retained LSB is odd
_TIE_ROUNDS_UP = {
    ROUND_HALF_EVEN: lambda is_odd: is_odd,
    ROUND_HALF_UP: lambda is_odd: True,
    ROUND_HALF_DOWN: lambda is_odd: False,
}

# Whether any inexact result rounds away from zero, given its sign
_DIRECTED_ROUNDS_UP = {
    ROUND_CEILING: lambda sign: not sign,
    ROUND_FLOOR: lambda sign: sign,
    ROUND_DOWN: lambda sign: False,
    ROUND_UP: lambda sign: True,
}


def round_up(rounding, lost_fraction, sign, is_odd):
    '''Return True if an inexact result must have its significand incremented, i.e. be
    rounded away from zero.'''
    if lost_fraction == LF_EXACTLY_ZERO:
        return False
    if rounding in _TIE_ROUNDS_UP:
        if lost_fraction == LF_EXACTLY_HALF:
            return _TIE_ROUNDS_UP[rounding](is_odd)
        return lost_fraction == LF_MORE_THAN_HALF
    return _DIRECTED_ROUNDS_UP[rounding](sign)


#
# Per-thread contexts
#

DefaultContext = Context()
DefaultContext.set_handler((Invalid, DivisionByZero, Overflow), HandlerKind.RAISE)
_local = threading.local()


def get_context():
    '''Return the calling thread's context, a copy of DefaultContext until set.'''
    context = getattr(_local, 'context', None)
    if context is None:
        context = _local.context = DefaultContext.copy()
    return context


def set_context(context):
    _local.context = context


@contextmanager
def local_context(context=None):
    '''Run the with-block under a copy of context (or of the current context), restoring
    the previous context afterwards.'''
    saved = get_context()
    context = (context or saved).copy()
    set_context(context)
    try:
        yield context
    finally:
        set_context(saved)
