#
# Constant tables shared by the tanh and reciprocal engines.  All values are exact
# binary32 encodings; nothing here is mutated after import.
#

from .fields import encode
from .softfloat import Binary32


__all__ = ('ARCTANH_BITS', 'POWER_BITS', 'ARCTANH_TABLE', 'POWER_TABLE', 'ARCTANH_ENTRIES',
           'arctanh_bits', 'power_bits',
           'CORDIC_GAIN_BITS', 'COMPARE_THRESHOLD_BITS', 'NR_OFFSET_BITS', 'NR_SLOPE_BITS',
           'CANONICAL_NAN_BITS', 'CORDIC_GAIN', 'NR_OFFSET', 'NR_SLOPE',
           'ZERO', 'HALF', 'ONE', 'MINUS_ONE', 'TWO')


# atanh(2^-(i+1)) for i = 0..24, correctly rounded to binary32.  From i = 11 on the
# cubic term is below half an ulp and the entry equals 2^-(i+1).
ARCTANH_BITS = (
    0x3F0C9F54,     # 0.549306144
    0x3E82C578,     # 0.255412812
    0x3E00AC49,     # 0.125657214
    0x3D802AC4,     # 0.0625815715
    0x3D000AAC,     # 0.0312601785
    0x3C8002AB,     # 0.0156262718
    0x3C0000AB,     # 0.00781265895
    0x3B80002B,     # 0.00390626987
    0x3B00000B,     # 0.00195312748
    0x3A800003,     # 0.000976562810
    0x3A000001,     # 0.000488281289
    0x39800000,
    0x39000000,
    0x38800000,
    0x38000000,
    0x37800000,
    0x37000000,
    0x36800000,
    0x36000000,
    0x35800000,
    0x35000000,
    0x34800000,
    0x34000000,
    0x33800000,
    0x33000000,
)

ARCTANH_ENTRIES = len(ARCTANH_BITS)

# 2^-(i+1): a zero mantissa with exponent field 126 - i
POWER_BITS = tuple(encode(0, 126 - i, 0) for i in range(ARCTANH_ENTRIES))

# Product of sqrt(1 - 2^-2(i+1)) over the rotation schedule, ≈ 0.828159361.  The final
# (x, y) is gain^2 * (cosh z0, sinh z0); tanh only needs their ratio.
CORDIC_GAIN_BITS = 0x3F540240

# 1.17: inputs at or above this magnitude are halved before rotation
COMPARE_THRESHOLD_BITS = 0x3F95C28F

# Minimax linear approximation 48/17 - 32/17 * D to 1/D over [0.5, 1)
NR_OFFSET_BITS = 0x4034B4B5
NR_SLOPE_BITS = 0x3FF0F0F1

CANONICAL_NAN_BITS = 0x7FC00000


def arctanh_bits(index):
    '''Return the encoding of atanh(2^-(index+1)), or 0 for an index outside the table.'''
    if 0 <= index < ARCTANH_ENTRIES:
        return ARCTANH_BITS[index]
    return 0


def power_bits(index):
    '''Return the encoding of 2^-(index+1), or 0 for an index outside the table.'''
    if 0 <= index < ARCTANH_ENTRIES:
        return POWER_BITS[index]
    return 0


ARCTANH_TABLE = tuple(Binary32.from_bits(bits) for bits in ARCTANH_BITS)
POWER_TABLE = tuple(Binary32.from_bits(bits) for bits in POWER_BITS)

CORDIC_GAIN = Binary32.from_bits(CORDIC_GAIN_BITS)
NR_OFFSET = Binary32.from_bits(NR_OFFSET_BITS)
NR_SLOPE = Binary32.from_bits(NR_SLOPE_BITS)

ZERO = Binary32.make_zero(False)
ONE = Binary32.make_one(False)
MINUS_ONE = Binary32.make_one(True)
HALF = Binary32.from_bits(0x3F000000)
TWO = Binary32.from_bits(0x40000000)
