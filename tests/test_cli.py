import argparse
import io

import pytest

from cordicfp.cli import main, parse_bits, format_result, DEMO_INPUTS
from cordicfp import CORDIC_STEPS


def run(*argv):
    out = io.StringIO()
    assert main(list(argv), out=out) == 0
    return out.getvalue().splitlines()


class TestParseBits:

    @pytest.mark.parametrize('text, answer', (
        ('3F800000', 0x3F800000),
        ('0x3f800000', 0x3F800000),
        ('0', 0),
        ('FFFFFFFF', 0xFFFFFFFF),
    ))
    def test_good(self, text, answer):
        assert parse_bits(text) == answer

    @pytest.mark.parametrize('text', ('1.0', 'xyz', '', '100000000', '-1'))
    def test_bad(self, text):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_bits(text)


def test_format_result():
    assert format_result('tanh', 0x40000000, 0x3F76CA83) == \
        'tanh(0x40000000) = 0x3F76CA83    2 -> 0.964027584'


def test_tanh():
    lines = run('tanh', '3F800000', '0x40000000')
    assert lines == [
        'tanh(0x3F800000) = 0x3F42F7D6    1 -> 0.761594176',
        'tanh(0x40000000) = 0x3F76CA83    2 -> 0.964027584',
    ]


def test_tanh_trace():
    lines = run('tanh', '--trace', '3F800000')
    assert len(lines) == CORDIC_STEPS + 2
    assert lines[0] == '  step  0 rom  0  x=0x3F540240 y=0x00000000 z=0x3F800000'
    assert lines[1] == '  step  1 rom  0  x=0x3F540240 y=0x3ED40240 z=0x3EE6C158'
    assert lines[-1] == 'tanh(0x3F800000) = 0x3F42F7D6    1 -> 0.761594176'


def test_reciprocal():
    lines = run('reciprocal', '40000000', '00000000')
    assert lines[0] == 'reciprocal(0x40000000) = 0x3F000000    2 -> 0.5'
    assert lines[1] == 'reciprocal(0x00000000) = 0x7F800000    0 -> inf'


def test_demo():
    lines = run('demo')
    assert len(lines) == 2 * len(DEMO_INPUTS) + 1
    assert all(line.startswith('reciprocal(') for line in lines[:len(DEMO_INPUTS)])
    assert all(line.startswith('tanh(') for line in lines[len(DEMO_INPUTS):-1])
    assert lines[-1] == 'nan_count=1 denorm_count=1 error_flag=False'


@pytest.mark.parametrize('argv', (
    [],
    ['tanh'],
    ['tanh', 'not-hex'],
    ['reciprocal', '123456789'],
    ['sqrt', '3F800000'],
))
def test_usage_errors(argv, capsys):
    with pytest.raises(SystemExit) as e:
        main(argv, out=io.StringIO())
    assert e.value.code == 2
