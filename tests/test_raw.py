from __future__ import annotations

import numpy as np
import pytest
from pydantic import ValidationError

from ingestomatic.models import ElementType, RawVolumeInfo
from ingestomatic.pipelines.raw import decode_raw_volume
from ingestomatic.utils.errors import DecodeError


def test_sample_count_and_x_fastest_layout():
    info = RawVolumeInfo(dimensions=(2, 3, 4), element_type=ElementType.UINT8)
    data = bytes(range(24))

    vol = decode_raw_volume(data, info, name="v.raw")

    assert vol.array.size == 24
    assert vol.array.shape == (4, 3, 2)
    assert vol.dimensions == (2, 3, 4)
    # x varies fastest
    assert vol.array[0, 0, 1] == 1
    assert vol.array[0, 1, 0] == 2
    assert vol.array[1, 0, 0] == 6


def test_big_endian_samples():
    info = RawVolumeInfo.model_validate(
        {"dimensions": (2, 2, 2), "elementType": "uint16", "byte_order": "big"}
    )
    data = np.arange(8, dtype=">u2").tobytes()

    vol = decode_raw_volume(data, info)

    assert vol.array.ravel().tolist() == list(range(8))
    assert vol.metadata == {"element_type": "uint16", "byte_order": "big"}


def test_spacing_is_carried():
    info = RawVolumeInfo(dimensions=(1, 1, 1), spacing=(0.5, 0.5, 2.0), element_type="float32")

    vol = decode_raw_volume(np.zeros(1, dtype="<f4").tobytes(), info)

    assert vol.spacing == (0.5, 0.5, 2.0)


def test_size_mismatch_is_a_decode_error():
    info = RawVolumeInfo(dimensions=(4, 4, 4), element_type="int16")

    with pytest.raises(DecodeError, match=r"100 bytes do not match 4x4x4 int16 \(128 bytes expected\)"):
        decode_raw_volume(b"\0" * 100, info, name="bad.raw")


@pytest.mark.parametrize(
    "field, value",
    [("dimensions", (0, 1, 1)), ("spacing", (1.0, -1.0, 1.0))],
)
def test_non_positive_shape_is_rejected(field, value):
    payload = {"dimensions": (1, 1, 1), "elementType": "uint8", field: value}
    with pytest.raises(ValidationError):
        RawVolumeInfo.model_validate(payload)
