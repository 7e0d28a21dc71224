'''Evaluate tanh and reciprocal of binary32 bit patterns given in hexadecimal.'''

import argparse
import logging
import sys

from .cordic import CordicTanh
from .reciprocal import ReciprocalEngine
from .softfloat import Binary32


# Operands exercised by the demo command: special values first, then ordinary operands
DEMO_INPUTS = (
    0x00000000,     # +0
    0x80000000,     # -0
    0x7F800000,     # +Infinity
    0xFF800000,     # -Infinity
    0x7FC00000,     # quiet NaN
    0x00400000,     # subnormal
    0x3F800000,     # 1.0
    0xBF800000,     # -1.0
    0x3F000000,     # 0.5
    0x3DCCCCCD,     # 0.1
    0x3F99999A,     # 1.2
    0x40000000,     # 2.0
    0x40400000,     # 3.0
    0xC2F6E979,     # -123.456
)


def parse_bits(text):
    '''argparse type for a 32-bit pattern written in hex, with or without 0x.'''
    try:
        bits = int(text, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f'invalid hexadecimal bit pattern: {text!r}')
    if not 0 <= bits <= 0xFFFFFFFF:
        raise argparse.ArgumentTypeError(f'bit pattern {text!r} does not fit in 32 bits')
    return bits


def format_result(operation, bits, result):
    return '{}(0x{:08X}) = 0x{:08X}    {:.9g} -> {:.9g}'.format(
        operation, bits, result,
        float(Binary32.from_bits(bits)), float(Binary32.from_bits(result)))


def run_tanh(args, out):
    engine = CordicTanh()
    for bits in args.inputs:
        if args.trace:
            trace = engine.trace(bits)
            for state in trace.states:
                out.write('  step {:2d} rom {:2d}  x=0x{:08X} y=0x{:08X} z=0x{:08X}\n'.format(
                    state.step, state.rom_index, state.x.to_bits(), state.y.to_bits(),
                    state.z.to_bits()))
            result = trace.result
        else:
            result = engine.tanh(bits)
        out.write(format_result('tanh', bits, result) + '\n')


def run_reciprocal(args, out):
    engine = ReciprocalEngine()
    for bits in args.inputs:
        out.write(format_result('reciprocal', bits, engine.reciprocal(bits)) + '\n')


def run_demo(args, out):
    tanh_engine = CordicTanh()
    recip_engine = ReciprocalEngine()
    for bits in DEMO_INPUTS:
        out.write(format_result('reciprocal', bits, recip_engine.reciprocal(bits)) + '\n')
    for bits in DEMO_INPUTS:
        out.write(format_result('tanh', bits, tanh_engine.tanh(bits)) + '\n')
    out.write('nan_count={} denorm_count={} error_flag={}\n'.format(
        recip_engine.nan_count, recip_engine.denorm_count, recip_engine.error_flag))


def make_parser():
    parser = argparse.ArgumentParser(prog='cordicfp', description=__doc__)
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='log engine decisions (repeat for debug detail)')
    commands = parser.add_subparsers(dest='command', required=True)

    tanh_parser = commands.add_parser('tanh', help='hyperbolic tangent by CORDIC')
    tanh_parser.add_argument('inputs', nargs='+', type=parse_bits, metavar='HEX')
    tanh_parser.add_argument('--trace', action='store_true',
                             help='print every CORDIC iteration state')
    tanh_parser.set_defaults(run=run_tanh)

    recip_parser = commands.add_parser('reciprocal', help='reciprocal by Newton-Raphson')
    recip_parser.add_argument('inputs', nargs='+', type=parse_bits, metavar='HEX')
    recip_parser.set_defaults(run=run_reciprocal)

    demo_parser = commands.add_parser('demo', help='run both engines over built-in operands')
    demo_parser.set_defaults(run=run_demo)
    return parser


def main(argv=None, out=None):
    args = make_parser().parse_args(argv)
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    args.run(args, out or sys.stdout)
    return 0


if __name__ == '__main__':
    sys.exit(main())
