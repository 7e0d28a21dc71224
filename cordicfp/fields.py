#
# Field decomposition and classification of binary32 bit patterns
#

from enum import IntEnum
from typing import NamedTuple


__all__ = ('FloatClass', 'DecodedFloat', 'check_bits', 'decode', 'encode',
           'SIGN_SHIFT', 'EXPONENT_SHIFT', 'EXPONENT_MASK', 'MANTISSA_MASK')


SIGN_SHIFT = 31
EXPONENT_SHIFT = 23
EXPONENT_MASK = 0xFF
MANTISSA_MASK = (1 << EXPONENT_SHIFT) - 1
WORD_MASK = 0xFFFFFFFF


class FloatClass(IntEnum):
    ZERO = 0
    SUBNORMAL = 1
    NORMAL = 2
    INFINITY = 3
    NAN = 4


class DecodedFloat(NamedTuple):
    '''The three fields of a binary32 encoding and the resulting class.  exponent is the
    raw biased field and mantissa excludes the implicit integer bit.'''

    sign: int
    exponent: int
    mantissa: int
    float_class: FloatClass

    def is_finite(self):
        return self.exponent != EXPONENT_MASK


def check_bits(bits):
    '''Raise if bits is not a 32-bit unsigned integer.'''
    if not isinstance(bits, int) or isinstance(bits, bool):
        raise TypeError(f'bit pattern must be an integer, not {type(bits).__name__}')
    if not 0 <= bits <= WORD_MASK:
        raise ValueError(f'bit pattern {bits:#x} does not fit in 32 bits')


def classify(exponent, mantissa):
    if exponent == 0:
        return FloatClass.SUBNORMAL if mantissa else FloatClass.ZERO
    if exponent == EXPONENT_MASK:
        return FloatClass.NAN if mantissa else FloatClass.INFINITY
    return FloatClass.NORMAL


def decode(bits):
    '''Split a bit pattern into sign, exponent and mantissa fields and classify it.  Every
    32-bit pattern has exactly one classification.'''
    check_bits(bits)
    sign = bits >> SIGN_SHIFT
    exponent = (bits >> EXPONENT_SHIFT) & EXPONENT_MASK
    mantissa = bits & MANTISSA_MASK
    return DecodedFloat(sign, exponent, mantissa, classify(exponent, mantissa))


def encode(sign, exponent, mantissa):
    '''Reassemble a bit pattern from its fields.'''
    if sign not in (0, 1):
        raise ValueError(f'sign must be 0 or 1: {sign!r}')
    if not 0 <= exponent <= EXPONENT_MASK:
        raise ValueError(f'exponent field {exponent} out of range')
    if not 0 <= mantissa <= MANTISSA_MASK:
        raise ValueError(f'mantissa field {mantissa:#x} out of range')
    return (int(sign) << SIGN_SHIFT) | (exponent << EXPONENT_SHIFT) | mantissa
