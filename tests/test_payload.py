"""
Blob payload encoding tests.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from payload import (
    BYTES_PER_BLOB,
    BYTES_PER_FIELD_ELEMENT,
    FIELD_ELEMENTS_PER_BLOB,
    MAX_BLOBS_PER_TX,
    decode_payload,
    encode_payload,
)


class TestEncodePayload:

    def test_single_blob_layout(self):
        blobs = encode_payload(b"spam")

        assert len(blobs) == 1
        blob = blobs[0]
        assert len(blob) == BYTES_PER_BLOB
        # length header, then data
        assert blob[:32] == b"\x00" + (4).to_bytes(8, "big") + b"\x00" * 23
        assert blob[32:37] == b"\x00spam"
        assert blob[37:] == b"\x00" * (BYTES_PER_BLOB - 37)

    def test_high_bytes_are_zero(self):
        data = bytes(range(256)) * 40
        blob = encode_payload(data)[0]

        for offset in range(0, BYTES_PER_BLOB, BYTES_PER_FIELD_ELEMENT):
            assert blob[offset] == 0

    def test_decode_recovers_data(self):
        data = b"\xff" * 1000 + b"tail"
        assert decode_payload(encode_payload(data)) == data

    def test_spills_into_second_blob(self):
        # header + (FIELD_ELEMENTS_PER_BLOB) data elements needs two blobs
        data = b"\x01" * (31 * FIELD_ELEMENTS_PER_BLOB)
        blobs = encode_payload(data)

        assert len(blobs) == 2
        assert decode_payload(blobs) == data

    def test_empty_payload(self):
        blobs = encode_payload(b"")
        assert len(blobs) == 1
        assert decode_payload(blobs) == b""

    def test_too_large(self):
        with pytest.raises(ValueError):
            encode_payload(b"\x01" * (31 * FIELD_ELEMENTS_PER_BLOB * MAX_BLOBS_PER_TX))


class TestDecodePayload:

    def test_wrong_size(self):
        with pytest.raises(ValueError):
            decode_payload([b"\x00" * 100])

    def test_non_zero_high_byte(self):
        blob = bytearray(encode_payload(b"spam")[0])
        blob[32] = 1
        with pytest.raises(ValueError):
            decode_payload([bytes(blob)])

    def test_no_blobs(self):
        with pytest.raises(ValueError):
            decode_payload([])
