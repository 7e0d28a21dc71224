#
# Newton-Raphson reciprocal of binary32 bit patterns
#

import logging
import threading
from enum import IntEnum

import attr

from .fields import decode, encode, FloatClass, EXPONENT_MASK
from .softfloat import Binary32, Context, E_BIAS, subtract, multiply, scaleb
from .tables import NR_OFFSET, NR_SLOPE, TWO, CANONICAL_NAN_BITS


__all__ = ('ReciprocalEngine', 'RecipState', 'Monitor', 'scaled_significand',
           'NEWTON_STEPS', 'NAN_LIMIT')


logger = logging.getLogger(__name__)

NEWTON_STEPS = 3
NAN_LIMIT = 100
# Exponent field that places a significand in [0.5, 1)
SCALED_EXPONENT = E_BIAS - 1


class RecipState(IntEnum):
    IDLE = 0
    EXTRACTING = 1
    REFINING = 2
    COMPLETE = 3


@attr.s(slots=True, eq=False)
class Monitor:
    '''Advisory counters for the reciprocal engine.

    The counters never influence results.  error_flag is set once more than nan_limit
    NaN operands have been seen and stays set until reset().  Updates are serialized by
    a lock so a monitor may be shared between threads and engines.
    '''

    nan_limit = attr.ib(default=NAN_LIMIT)
    nan_count = attr.ib(default=0, init=False)
    denorm_count = attr.ib(default=0, init=False)
    error_flag = attr.ib(default=False, init=False)
    _lock = attr.ib(factory=threading.Lock, init=False, repr=False)

    def record_nan(self):
        with self._lock:
            self.nan_count += 1
            if self.nan_count > self.nan_limit and not self.error_flag:
                self.error_flag = True
                logger.warning('more than %d NaN operands; error flag set', self.nan_limit)

    def record_denorm(self):
        with self._lock:
            self.denorm_count += 1

    def reset(self):
        with self._lock:
            self.nan_count = 0
            self.denorm_count = 0
            self.error_flag = False


def scaled_significand(bits):
    '''Return the operand's mantissa with a positive sign and an exponent of -1, which lies
    in [0.5, 1).'''
    return Binary32.from_bits(encode(0, SCALED_EXPONENT, decode(bits).mantissa))


class ReciprocalEngine:
    '''Computes 1/x of binary32 bit patterns.

    Special operands are answered directly.  Finite non-zero operands are reduced to a
    significand in [0.5, 1), refined with exactly NEWTON_STEPS Newton-Raphson steps from
    a linear first approximation, and rescaled by the operand's exponent.
    '''

    def __init__(self, monitor=None):
        self.monitor = monitor if monitor is not None else Monitor()
        # The state machine position is per thread; concurrent calls do not interfere
        self._local = threading.local()

    @property
    def state(self):
        return getattr(self._local, 'state', RecipState.IDLE)

    def _set_state(self, state):
        self._local.state = state

    @property
    def nan_count(self):
        return self.monitor.nan_count

    @property
    def denorm_count(self):
        return self.monitor.denorm_count

    @property
    def error_flag(self):
        return self.monitor.error_flag

    def reset_counters(self):
        self.monitor.reset()

    def reciprocal(self, bits):
        '''Return the encoding of 1/x for the encoding of x.  Never raises for a valid
        32-bit pattern.'''
        fields = decode(bits)
        self._set_state(RecipState.EXTRACTING)

        if fields.float_class == FloatClass.NAN:
            self.monitor.record_nan()
            result = CANONICAL_NAN_BITS
        elif fields.float_class == FloatClass.INFINITY:
            result = encode(fields.sign, 0, 0)
        elif fields.float_class == FloatClass.ZERO:
            result = encode(fields.sign, EXPONENT_MASK, 0)
        else:
            if fields.float_class == FloatClass.SUBNORMAL:
                self.monitor.record_denorm()
                logger.warning('subnormal operand 0x%08X: reduced precision', bits)
            self._set_state(RecipState.REFINING)
            result = self._refine_and_rescale(bits, fields)

        logger.debug('reciprocal 0x%08X (%s) -> 0x%08X', bits, fields.float_class.name,
                     result)
        self._set_state(RecipState.COMPLETE)
        return result

    def refine(self, bits, context=None):
        '''Return the list [Z0, Z1, Z2, Z3] of approximations to 1/D, where D is the
        scaled significand of bits.'''
        context = context or Context()
        scaled_d = scaled_significand(bits)
        z = subtract(NR_OFFSET, multiply(NR_SLOPE, scaled_d, context), context)
        approximations = [z]
        for _ in range(NEWTON_STEPS):
            z = multiply(z, subtract(TWO, multiply(scaled_d, z, context), context), context)
            approximations.append(z)
        return approximations

    def _refine_and_rescale(self, bits, fields):
        context = Context()
        z = self.refine(bits, context)[-1]

        # 1/x = 1/D * 2^(-E-1) where E is the unbiased exponent of x
        exponent = fields.exponent - E_BIAS
        scale_field = E_BIAS - exponent - 1
        if 0 < scale_field < EXPONENT_MASK:
            result = multiply(z, Binary32.from_bits(encode(0, scale_field, 0)), context)
        else:
            # The scale factor itself is subnormal
            result = scaleb(z, -exponent - 1, context)

        if fields.sign:
            result = result.copy_negate()
        return result.to_bits()
