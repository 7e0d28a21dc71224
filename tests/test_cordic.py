import logging
import math
import threading

import pytest

from cordicfp import *

from datafiles import read_vectors


def to_bits(value):
    return Binary32.from_float(value, Context()).to_bits()


def to_float(bits):
    return float(Binary32.from_bits(bits))


TANH_VECTORS = read_vectors('tanh.txt')
# Largest disagreement in ULPs between the direct and half-angle paths
DOUBLE_ANGLE_ULPS = 16
# Rotating any z beyond the convergence limit ends here
DIRECT_SATURATED = 0x3F4E9321


def both_paths(value):
    '''Return tanh(value) as bits by rotating value directly, and by rotating value / 2
    then applying the double-angle identity.'''
    engine = CordicTanh()
    context = Context()
    z = Binary32.from_float(value, context)
    x, y, _ = engine.rotate(z, context)
    direct = divide(y, x, context)
    x, y, _ = engine.rotate(multiply(z, HALF, context), context)
    recovered = double_angle(divide(y, x, context), context)
    return direct.to_bits(), recovered.to_bits()


class TestSchedule:

    def test_length(self):
        schedule = list(rom_schedule())
        assert len(schedule) == CORDIC_STEPS == 27
        assert [step for step, _ in schedule] == list(range(27))

    def test_indices(self):
        indices = [rom_index for _, rom_index in rom_schedule()]
        assert indices == [0, 1, 2, 3, 3] + list(range(4, 13)) + [12] + list(range(13, 25))
        assert all(rom_index <= step for step, rom_index in rom_schedule())

    def test_repeats(self):
        indices = [rom_index for _, rom_index in rom_schedule()]
        for rom_index in range(ARCTANH_ENTRIES):
            expected = 2 if rom_index in REPEATED_INDICES else 1
            assert indices.count(rom_index) == expected


class TestTanh:

    @pytest.mark.parametrize('bits, answer', TANH_VECTORS)
    def test_vectors(self, bits, answer):
        assert tanh(bits) == answer
        assert CordicTanh().tanh(bits) == answer

    @pytest.mark.parametrize('bits, answer', TANH_VECTORS)
    def test_odd(self, bits, answer):
        assert tanh(bits ^ 0x80000000) == answer ^ 0x80000000

    @pytest.mark.parametrize('bits', (0x00000000, 0x80000000, 0x00000001, 0x807FFFFF,
                                      0x00400000))
    def test_zero_and_subnormal(self, bits):
        assert tanh(bits) == bits

    @pytest.mark.parametrize('bits', (0x7FC00000, 0xFFC00000, 0x7F800001, 0xFFFFFFFF))
    def test_nan(self, bits):
        assert tanh(bits) == CANONICAL_NAN_BITS

    @pytest.mark.parametrize('value', [n / 64 for n in range(-70, 71)]
                             + [1.17 + n / 64 for n in range(66)])
    def test_accuracy(self, value):
        bits = to_bits(value)
        x = to_float(bits)
        assert abs(to_float(tanh(bits)) - math.tanh(x)) < 1e-5

    @pytest.mark.parametrize('value', (3.0, 7.0, 1e10, math.inf))
    def test_saturation(self, value):
        assert tanh(to_bits(value)) == 0x3F7A3880
        assert tanh(to_bits(-value)) == 0xBF7A3880

    def test_result_bounded(self):
        for bits in (0x3F800000, 0x40000000, 0x7F7FFFFF, 0xFF7FFFFF):
            assert abs(to_float(tanh(bits))) < 1.0

    def test_monotonic(self):
        results = [to_float(tanh(to_bits(n / 32))) for n in range(0, 70)]
        assert results == sorted(results)

    # Both paths converge while |x| stays below the CORDIC limit of about 1.1182
    @pytest.mark.parametrize('value', [n / 64 for n in range(16, 72)])
    def test_double_angle_consistency(self, value):
        direct, recovered = both_paths(value)
        assert abs(direct - recovered) <= DOUBLE_ANGLE_ULPS

    # Past the limit the direct rotation saturates, so halving is required
    @pytest.mark.parametrize('value', [1.17 + n / 100 for n in range(117)])
    def test_double_angle_required(self, value):
        direct, recovered = both_paths(value)
        assert direct == DIRECT_SATURATED
        assert recovered - direct > 250000
        if value < 2.2:
            assert abs(to_float(recovered) - math.tanh(value)) < 1e-5

    def test_double_angle(self):
        t = Binary32.from_float(0.5, Context())
        assert float(double_angle(t, Context())) == pytest.approx(0.8, abs=1e-7)
        assert double_angle(ZERO, Context()) == ZERO

    def test_threshold(self):
        # With a threshold of 0.5, 1.0 is halved first
        engine = CordicTanh(threshold=0x3F000000)
        trace = engine.trace(0x3F800000)
        assert trace.double_angle
        assert abs(to_float(trace.result) - math.tanh(1.0)) < 1e-5
        assert not CordicTanh().trace(0x3F800000).double_angle

    def test_bad_input(self):
        with pytest.raises(ValueError):
            tanh(1 << 32)
        with pytest.raises(TypeError):
            tanh(1.0)
        with pytest.raises(TypeError):
            CordicTanh(threshold='1.17')

    def test_deterministic(self):
        engine = CordicTanh()
        assert all(engine.tanh(0x3F99999A) == 0x3F556A64 for _ in range(5))

    def test_threads(self):
        engine = CordicTanh()
        failures = []

        def target():
            for bits, answer in TANH_VECTORS:
                if engine.tanh(bits) != answer:
                    failures.append(bits)

        threads = [threading.Thread(target=target) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert not failures


class TestTrace:

    def test_states(self):
        trace = CordicTanh().trace(0x3F800000)
        assert trace.input == 0x3F800000
        assert not trace.double_angle
        assert len(trace.states) == CORDIC_STEPS + 1
        assert trace.states[0] == CordicState(0, 0, CORDIC_GAIN, ZERO, ONE)
        assert trace.result == 0x3F42F7D6

        first = trace.states[1]
        assert (first.step, first.rom_index) == (1, 0)
        # y = gain / 2 after the first rotation
        assert first.y.to_bits() == 0x3ED40240
        assert first.x == CORDIC_GAIN
        assert first.z.to_bits() == 0x3EE6C158

        steps = [(state.step, state.rom_index) for state in trace.states[1:]]
        assert steps == [(step + 1, rom_index) for step, rom_index in rom_schedule()]

    def test_final_state(self):
        trace = CordicTanh().trace(0x3F000000)
        final = trace.states[-1]
        gain_squared = float(CORDIC_GAIN) ** 2
        assert float(final.x) == pytest.approx(gain_squared * math.cosh(0.5), abs=1e-6)
        assert float(final.y) == pytest.approx(gain_squared * math.sinh(0.5), abs=1e-6)
        assert abs(float(final.z)) < 1e-6

    def test_halved(self):
        trace = CordicTanh().trace(0x40000000)
        assert trace.double_angle
        assert trace.states[0].z == ONE
        assert trace.result == 0x3F76CA83

    def test_steps_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger='cordicfp.cordic'):
            CordicTanh().trace(0x3F800000)
        assert 'step  1 rom  0  x=0x3F540240 y=0x3ED40240 z=0x3EE6C158' in caplog.text
        assert caplog.text.count(' rom ') == CORDIC_STEPS

    def test_steps_not_logged_untraced(self, caplog):
        with caplog.at_level(logging.DEBUG, logger='cordicfp.cordic'):
            CordicTanh().tanh(0x3F800000)
        assert ' rom ' not in caplog.text

    def test_inexact_flag(self):
        trace = CordicTanh().trace(0x3F000000)
        assert trace.flags & Flags.INEXACT

    @pytest.mark.parametrize('bits', (0x00000000, 0x00000001, 0x7FC00000))
    def test_short_circuit(self, bits):
        trace = CordicTanh().trace(bits)
        assert trace.states == ()
        assert not trace.double_angle
        assert trace.result == tanh(bits)

    @pytest.mark.parametrize('bits, answer', TANH_VECTORS)
    def test_result_matches_tanh(self, bits, answer):
        assert CordicTanh().trace(bits).result == answer
