"""
Blob payload encoding.

Packs arbitrary bytes into EIP-4844 blobs. A blob is 4096 field elements of
32 bytes; every element keeps its high byte zero so it stays below the BLS
modulus and carries 31 bytes of data. The first element holds the data
length as a big-endian u64, the rest hold the data, zero padded.
"""

from typing import List

FIELD_ELEMENTS_PER_BLOB = 4096
BYTES_PER_FIELD_ELEMENT = 32
USABLE_BYTES_PER_FIELD_ELEMENT = 31
BYTES_PER_BLOB = FIELD_ELEMENTS_PER_BLOB * BYTES_PER_FIELD_ELEMENT

# EIP-4844 per-transaction limit
MAX_BLOBS_PER_TX = 6


def _field_element(chunk: bytes) -> bytes:
    return b"\x00" + chunk.ljust(USABLE_BYTES_PER_FIELD_ELEMENT, b"\x00")


def encode_payload(data: bytes) -> List[bytes]:
    """
    Encode data into as many blobs as needed.

    Raises:
        ValueError: If the data does not fit in one transaction's blobs
    """
    elements = [_field_element(len(data).to_bytes(8, "big"))]
    for offset in range(0, len(data), USABLE_BYTES_PER_FIELD_ELEMENT):
        elements.append(_field_element(data[offset:offset + USABLE_BYTES_PER_FIELD_ELEMENT]))

    blobs = []
    for start in range(0, len(elements), FIELD_ELEMENTS_PER_BLOB):
        blob = b"".join(elements[start:start + FIELD_ELEMENTS_PER_BLOB])
        blobs.append(blob.ljust(BYTES_PER_BLOB, b"\x00"))

    if len(blobs) > MAX_BLOBS_PER_TX:
        raise ValueError(
            f"payload of {len(data)} bytes needs {len(blobs)} blobs, "
            f"at most {MAX_BLOBS_PER_TX} fit in a transaction"
        )
    return blobs


def decode_payload(blobs: List[bytes]) -> bytes:
    """Recover the bytes packed by encode_payload."""
    if not blobs:
        raise ValueError("no blobs to decode")

    raw = bytearray()
    for blob in blobs:
        if len(blob) != BYTES_PER_BLOB:
            raise ValueError(f"blob must be {BYTES_PER_BLOB} bytes, got {len(blob)}")
        for offset in range(0, BYTES_PER_BLOB, BYTES_PER_FIELD_ELEMENT):
            if blob[offset] != 0:
                raise ValueError(f"field element at byte {offset} has a non-zero high byte")
            raw += blob[offset + 1:offset + BYTES_PER_FIELD_ELEMENT]

    length = int.from_bytes(raw[:8], "big")
    data = bytes(raw[USABLE_BYTES_PER_FIELD_ELEMENT:USABLE_BYTES_PER_FIELD_ELEMENT + length])
    if len(data) != length:
        raise ValueError(f"blobs hold {len(data)} bytes, header says {length}")
    return data
