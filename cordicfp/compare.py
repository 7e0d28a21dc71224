#
# Magnitude comparison on raw binary32 fields
#

from .fields import decode, EXPONENT_MASK


__all__ = ('less_than_abs', )


def less_than_abs(x, threshold):
    '''Return True if |x| < |threshold|, comparing fields without converting to a real.

    A zero or subnormal x is less than any threshold except one with a zero exponent
    field.  Otherwise, if either operand is an infinity or NaN the answer is False.  Two
    normal numbers compare lexicographically on (exponent, mantissa); signs are ignored.
    '''
    lhs = decode(x)
    rhs = decode(threshold)

    if lhs.exponent == 0:
        return rhs.exponent != 0
    if EXPONENT_MASK in (lhs.exponent, rhs.exponent):
        return False
    return (lhs.exponent, lhs.mantissa) < (rhs.exponent, rhs.mantissa)
