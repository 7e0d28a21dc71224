#
# Hyperbolic CORDIC evaluation of tanh over binary32
#

import logging
from collections import namedtuple

import attr

from .compare import less_than_abs
from .fields import decode, FloatClass
from .softfloat import Binary32, Context, add, subtract, multiply, divide
from .tables import (ARCTANH_ENTRIES, ARCTANH_TABLE, POWER_TABLE, CORDIC_GAIN,
                     COMPARE_THRESHOLD_BITS, CANONICAL_NAN_BITS,
                     ZERO, HALF, ONE, MINUS_ONE, TWO)


__all__ = ('CordicTanh', 'CordicState', 'CordicTrace', 'rom_schedule', 'double_angle',
           'tanh', 'CORDIC_STEPS', 'REPEATED_INDICES')


logger = logging.getLogger(__name__)

# Hyperbolic rotations do not converge unless these table entries are applied twice
REPEATED_INDICES = frozenset({3, 12})
CORDIC_STEPS = ARCTANH_ENTRIES + len(REPEATED_INDICES)


# One snapshot of the rotation.  Snapshot 0 is the initial state; snapshot n is the
# state after step n - 1, which used table entry rom_index.
CordicState = namedtuple('CordicState', 'step rom_index x y z')


@attr.s(slots=True, frozen=True)
class CordicTrace:
    '''The full record of one tanh evaluation.'''

    input = attr.ib()
    # True if the input was halved and the result recovered with the double-angle identity
    double_angle = attr.ib()
    # CORDIC_STEPS + 1 CordicState snapshots; empty for short-circuited inputs
    states = attr.ib()
    result = attr.ib()
    flags = attr.ib(default=0)


def rom_schedule():
    '''Yield (step, rom_index) for each of the CORDIC_STEPS rotation steps.

    rom_index advances after every step except the first use of each repeated index,
    which is therefore applied on two consecutive steps.
    '''
    step = 0
    for rom_index in range(ARCTANH_ENTRIES):
        for _ in range(2 if rom_index in REPEATED_INDICES else 1):
            yield step, rom_index
            step += 1


def double_angle(t, context=None):
    '''Return tanh(2a) = 2t / (1 + t^2) given t = tanh(a).'''
    numerator = multiply(TWO, t, context)
    denominator = add(ONE, multiply(t, t, context), context)
    return divide(numerator, denominator, context)


class CordicTanh:
    '''Computes tanh of binary32 bit patterns by hyperbolic CORDIC rotation.

    Each call owns its iteration state so one instance can serve any number of threads.
    '''

    def __init__(self, threshold=COMPARE_THRESHOLD_BITS):
        decode(threshold)
        self.threshold = threshold

    def tanh(self, bits):
        '''Return the encoding of tanh(x) for the encoding of x.'''
        return self._evaluate(bits, None).result

    def trace(self, bits):
        '''Return a CordicTrace recording every rotation step of tanh(x).'''
        return self._evaluate(bits, [])

    def rotate(self, z, context=None, states=None):
        '''Run the rotation steps from (gain, 0, z) and return the final (x, y, z).

        If states is a list, the initial state and every post-step state are appended.
        '''
        context = context or Context()
        x, y = CORDIC_GAIN, ZERO
        if states is not None:
            states.append(CordicState(0, 0, x, y, z))

        for step, rom_index in rom_schedule():
            # Only the sign of the residual angle picks the direction
            d = MINUS_ONE if z.sign else ONE
            power = POWER_TABLE[rom_index]
            x, y, z = (
                add(x, multiply(multiply(d, y, context), power, context), context),
                add(y, multiply(multiply(d, x, context), power, context), context),
                subtract(z, multiply(d, ARCTANH_TABLE[rom_index], context), context),
            )
            if states is not None:
                states.append(CordicState(step + 1, rom_index, x, y, z))
                logger.debug('step %2d rom %2d  x=0x%08X y=0x%08X z=0x%08X', step + 1, rom_index,
                             x.to_bits(), y.to_bits(), z.to_bits())

        return x, y, z

    def _evaluate(self, bits, states):
        fields = decode(bits)

        if fields.float_class == FloatClass.NAN:
            return CordicTrace(bits, False, (), CANONICAL_NAN_BITS)
        # tanh(x) rounds to x for zeroes and subnormals
        if fields.float_class in (FloatClass.ZERO, FloatClass.SUBNORMAL):
            return CordicTrace(bits, False, (), bits)

        context = Context()
        value = Binary32.from_bits(bits)
        if less_than_abs(bits, self.threshold):
            z, needs_double_angle = value, False
        else:
            z, needs_double_angle = multiply(value, HALF, context), True
        logger.debug('tanh 0x%08X: range extension %s', bits,
                     'taken' if needs_double_angle else 'not needed')

        x, y, _z = self.rotate(z, context, states)
        result = divide(y, x, context)
        if needs_double_angle:
            result = double_angle(result, context)

        return CordicTrace(bits, needs_double_angle, tuple(states or ()),
                           result.to_bits(), context.flags)


_engine = CordicTanh()


def tanh(bits):
    '''Return the encoding of tanh(x) for the encoding of x.'''
    return _engine.tanh(bits)
