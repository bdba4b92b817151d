import math
import struct

import pytest

from ableton_osc import (
    OscMessage,
    OscEncodeError,
    OscDecodeError,
    encode_osc_message,
    decode_osc_message,
    osc_type_tag,
)
from ableton_osc.osc_message import encode_osc_string, decode_osc_string, pad4


def f32(value):
    return struct.unpack('>f', struct.pack('>f', value))[0]


def test_pad4():
    assert [pad4(n) for n in range(9)] == [0, 3, 2, 1, 0, 3, 2, 1, 0]


def test_encode_osc_string():
    assert encode_osc_string('') == b'\x00\x00\x00\x00'
    assert encode_osc_string('ok') == b'ok\x00\x00'
    assert encode_osc_string('abc') == b'abc\x00'
    assert encode_osc_string('abcd') == b'abcd\x00\x00\x00\x00'
    with pytest.raises(OscEncodeError):
        encode_osc_string('a\x00b')


def test_decode_osc_string():
    data = b'abcd\x00\x00\x00\x00ok\x00\x00'
    assert decode_osc_string(data, 0) == ('abcd', 8)
    assert decode_osc_string(data, 8) == ('ok', 12)


def test_no_arguments():
    data = encode_osc_message('/live/song/get/tempo')
    assert data == b'/live/song/get/tempo\x00\x00\x00\x00,\x00\x00\x00'
    message = decode_osc_message(data)
    assert message.address == '/live/song/get/tempo'
    assert message.args == ()
    assert message.type_tags == ''


def test_integer_layout():
    assert encode_osc_message('/a', 4) == b'/a\x00\x00,i\x00\x00\x00\x00\x00\x04'
    assert encode_osc_message('/a', -1) == b'/a\x00\x00,i\x00\x00\xff\xff\xff\xff'


def test_float_layout():
    assert encode_osc_message('/a', 4.5) == b'/a\x00\x00,f\x00\x00\x40\x90\x00\x00'


def test_string_layout():
    assert encode_osc_message('/live/test', 'ok') == b'/live/test\x00\x00,s\x00\x00ok\x00\x00'


def test_boolean_has_no_payload():
    data = encode_osc_message('/a', True, False)
    assert data == b'/a\x00\x00,TF\x00'
    message = decode_osc_message(data)
    assert message.args == (True, False)
    assert message.type_tags == 'TF'
    assert all(type(arg) is bool for arg in message.args)


def test_boolean_between_payloads():
    message = decode_osc_message(encode_osc_message('/a', 1, True, 'x', False, 2.5))
    assert message.args == (1, True, 'x', False, 2.5)
    assert message.type_tags == 'iTsFf'


def test_numeric_classification():
    assert osc_type_tag(4) == 'i'
    assert osc_type_tag(4.5) == 'f'
    # integral floats within int32 are sent as integers
    assert osc_type_tag(3.0) == 'i'
    assert osc_type_tag(-0.0) == 'i'
    assert osc_type_tag(3e9) == 'f'
    assert osc_type_tag(float('nan')) == 'f'
    assert osc_type_tag(float('inf')) == 'f'
    assert osc_type_tag(True) == 'T'
    assert osc_type_tag(False) == 'F'
    assert osc_type_tag('x') == 's'


def test_integral_float_decodes_as_int():
    message = decode_osc_message(encode_osc_message('/a', 3.0, -0.0))
    assert message.args == (3, 0)
    assert all(type(arg) is int for arg in message.args)


def test_round_trip():
    args = [0, 1, -1, 2**31 - 1, -2**31, 0.1, -123.456, 1e-7, 'hello', '', 'üñí©ødé ♫', True, False]
    data = encode_osc_message('/live/clip/set/notes', *args)
    assert len(data) % 4 == 0
    message = decode_osc_message(data)
    assert message.address == '/live/clip/set/notes'
    assert message.type_tags == 'iiiiifffsssTF'
    expected = [f32(arg) if isinstance(arg, float) else arg for arg in args]
    assert list(message.args) == expected
    for got, want in zip(message.args, expected):
        assert type(got) is type(want)


def test_padding_invariant():
    for address in ['/a', '/ab', '/abc', '/abcd', '/live/song/get/tempo']:
        for args in [(), ('',), ('abc',), (1, 'ab', 2.5), (True,), ('xyz', False, 'q')]:
            assert len(encode_osc_message(address, *args)) % 4 == 0


def test_nan_round_trip():
    message = decode_osc_message(encode_osc_message('/a', float('nan')))
    assert message.type_tags == 'f'
    assert math.isnan(message.args[0])


def test_encode_errors():
    with pytest.raises(OscEncodeError):
        encode_osc_message('')
    with pytest.raises(OscEncodeError):
        encode_osc_message('/a', 2**31)
    with pytest.raises(OscEncodeError):
        encode_osc_message('/a', -2**31 - 1)
    with pytest.raises(OscEncodeError):
        encode_osc_message('/a', 1e39)
    with pytest.raises(OscEncodeError):
        encode_osc_message('/a', None)
    with pytest.raises(OscEncodeError):
        encode_osc_message('/a', b'bytes')
    with pytest.raises(OscEncodeError):
        encode_osc_message('/a\x00b')
    # encode errors are also ValueErrors
    with pytest.raises(ValueError):
        encode_osc_message('/a', 'x\x00')


def test_missing_type_tags():
    assert decode_osc_message(b'/a\x00\x00').args == ()
    assert decode_osc_message(b'/a\x00').args == ()
    message = decode_osc_message(b'/abc\x00\x00\x00\x00garbage!')
    assert message.address == '/abc'
    assert message.args == ()


@pytest.mark.parametrize('data', [
    b'',
    b'/abc',
    b'\x00\x00\x00\x00,\x00\x00\x00',
    b'/\xff\x00\x00',
    b'#bundle\x00\x00\x00\x00\x00\x00\x00\x00\x01',
    b'/a\x00\x00,i\x00\x00\x00\x00\x01',
    b'/a\x00\x00,f\x00\x00',
    b'/a\x00\x00,s\x00\x00abc',
    b'/a\x00\x00,x\x00\x00',
    b'/a\x00\x00,ii',
])
def test_malformed_datagrams(data):
    with pytest.raises(OscDecodeError):
        decode_osc_message(data)


def test_trailing_bytes_ignored():
    data = encode_osc_message('/a', 7) + b'\x00\x00\x00\x09'
    assert decode_osc_message(data).args == (7,)


def test_message_object():
    message = OscMessage('/live/song/get/tempo', [120.5])
    assert message.raw_data == encode_osc_message('/live/song/get/tempo', 120.5)
    assert message.type_tags == 'f'
    assert len(message) == 1
    assert message.arg(0) == 120.5
    assert message.arg(1) is None
    assert message.arg(1, 'x') == 'x'
    assert OscMessage.from_raw_data(message.raw_data) == message
    assert message.to_jsonable() == {'address': '/live/song/get/tempo', 'args': [120.5]}
    assert '/live/song/get/tempo' in str(message)


def test_message_equality_is_type_aware():
    assert OscMessage('/a', [1]) == OscMessage('/a', [1])
    assert OscMessage('/a', [1]) != OscMessage('/a', [True])
    assert OscMessage('/a', [0]) != OscMessage('/a', [False])
    assert OscMessage('/a', [1]) != OscMessage('/b', [1])
    assert OscMessage('/a', ['1']) != OscMessage('/a', [1])
    # a float received on the wire is not the same message as the int it equals
    wire_float = decode_osc_message(b'/a\x00\x00,f\x00\x00\x40\x40\x00\x00')
    assert wire_float.args == (3.0,)
    assert wire_float.type_tags == 'f'
    assert wire_float != OscMessage('/a', [3])
