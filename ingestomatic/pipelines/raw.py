"""Interpret headerless ``.raw`` buffers as scalar volumes.

A raw file carries no header, so the caller supplies the shape, spacing and
element type through :class:`~ingestomatic.models.RawVolumeInfo`. Samples are
laid out x-fastest, then y, then z; the resulting array is indexed
``(z, y, x)``.
"""

from __future__ import annotations

import numpy as np

from ingestomatic.models import ImageVolume, RawVolumeInfo
from ingestomatic.utils.errors import DecodeError


def decode_raw_volume(data: bytes, info: RawVolumeInfo, *, name: str = "") -> ImageVolume:
    """Return an :class:`ImageVolume` holding exactly ``x*y*z`` samples.

    Args:
        data: The raw byte buffer.
        info: Dimensions, spacing, element type and byte order.
        name: Display name carried into the result.

    Raises:
        DecodeError: If ``len(data)`` differs from the size implied by *info*.
    """
    expected = info.expected_nbytes
    if len(data) != expected:
        x, y, z = info.dimensions
        raise DecodeError(
            f"{name or 'raw buffer'}: {len(data)} bytes do not match "
            f"{x}x{y}x{z} {info.element_type.value} ({expected} bytes expected)"
        )

    x, y, z = info.dimensions
    # frombuffer returns a read-only view of *data*; copy so consumers own it.
    samples = np.frombuffer(data, dtype=info.dtype, count=info.sample_count).copy()
    array = samples.reshape((z, y, x))
    return ImageVolume(
        name=name,
        array=array,
        spacing=tuple(float(s) for s in info.spacing),
        metadata={"element_type": info.element_type.value, "byte_order": info.byte_order},
    )


__all__ = ["decode_raw_volume"]
