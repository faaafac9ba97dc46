"""Typed device buffers backed by individually releasable Taichi fields.

Every buffer owns its own SNode tree, built through ``ti.FieldsBuilder``,
so its memory can be released deterministically with ``destroy()`` instead
of living for the whole Taichi session. Kernels receive the underlying
fields as ``ti.template()`` arguments, so a reallocated buffer simply
produces a new kernel instantiation.

Two kinds of buffers are provided:

- ``TypedBuffer``: a flat array of ``count`` elements, each made of
  ``stride`` scalars of one dtype. Stored as a 2D field of shape
  ``(count, stride)``.
- ``ImageBuffer``: an RGB float image stored as a vec3 field of shape
  ``(width, height)``, with (0, 0) at the bottom-left.

``sync_typed_buffer`` is the single place where the "reallocate or
overwrite" decision is made for host arrays.

Example:
    >>> import numpy as np
    >>> layout = BufferLayout(dtype=ti.f32, stride=3)
    >>> buffer = sync_typed_buffer(None, np.zeros((4, 3), np.float32), layout)
    >>> buffer.count
    4
    >>> buffer = sync_typed_buffer(buffer, np.ones((4, 3), np.float32), layout)
    >>> buffer = sync_typed_buffer(buffer, np.empty((0, 3), np.float32), layout)
    >>> buffer is None
    True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BufferLayout:
    """Element layout of a typed buffer.

    Attributes:
        dtype: The Taichi scalar type of every component (ti.f32 or ti.i32).
        stride: Number of scalar components per element.
    """

    dtype: Any
    stride: int

    @property
    def numpy_dtype(self) -> type[np.generic]:
        """The NumPy dtype matching ``dtype``."""
        if self.dtype == ti.i32:
            return np.int32
        if self.dtype == ti.f32:
            return np.float32
        raise ValueError(f"Unsupported buffer dtype: {self.dtype}")


class TypedBuffer:
    """A device buffer of ``count`` elements with a fixed element layout.

    Attributes:
        count: Number of elements.
        layout: The element layout.
        field: The backing Taichi field of shape (count, stride).
    """

    def __init__(self, count: int, layout: BufferLayout) -> None:
        if count <= 0:
            raise ValueError(f"Buffer element count must be positive, got {count}")
        if layout.stride <= 0:
            raise ValueError(f"Buffer stride must be positive, got {layout.stride}")

        self.count = count
        self.layout = layout

        builder = ti.FieldsBuilder()
        self.field = ti.field(dtype=layout.dtype)
        builder.dense(ti.ij, (count, layout.stride)).place(self.field)
        self._tree: Any = builder.finalize()

    @property
    def released(self) -> bool:
        """Whether the backing memory has been released."""
        return self._tree is None

    def matches(self, count: int, layout: BufferLayout) -> bool:
        """Check whether this buffer can hold ``count`` elements of ``layout``."""
        return self.count == count and self.layout == layout

    def upload(self, data: npt.NDArray[Any]) -> None:
        """Overwrite the buffer contents with a host array.

        Args:
            data: Array of shape (count, stride) or (count,) for stride 1.

        Raises:
            RuntimeError: If the buffer has been released.
            ValueError: If the array shape does not match the buffer.
        """
        if self.released:
            raise RuntimeError("Cannot upload to a released buffer")

        array = as_element_array(data, self.layout)
        if array.shape[0] != self.count:
            raise ValueError(
                f"Data shape {array.shape} doesn't match buffer "
                f"({self.count}, {self.layout.stride})"
            )
        self.field.from_numpy(array)

    def to_numpy(self) -> npt.NDArray[Any]:
        """Read the buffer back to the host as a (count, stride) array."""
        if self.released:
            raise RuntimeError("Cannot read a released buffer")
        return self.field.to_numpy()

    def release(self) -> None:
        """Release the backing memory. Safe to call more than once."""
        if self._tree is not None:
            self._tree.destroy()
            self._tree = None

    def __repr__(self) -> str:
        return (
            f"TypedBuffer(count={self.count}, stride={self.layout.stride}, "
            f"dtype={self.layout.dtype}, released={self.released})"
        )


def as_element_array(data: npt.NDArray[Any], layout: BufferLayout) -> npt.NDArray[Any]:
    """Convert host data to a contiguous (count, stride) array of ``layout``.

    Raises:
        ValueError: If the data does not have ``layout.stride`` components per
            element.
    """
    array = np.ascontiguousarray(data, dtype=layout.numpy_dtype)
    array = array.reshape(array.shape[0], -1) if array.ndim == 1 else array
    if array.ndim != 2 or array.shape[1] != layout.stride:
        raise ValueError(
            f"Data shape {array.shape} doesn't match element stride {layout.stride}"
        )
    return array


def needs_reallocation(
    buffer: TypedBuffer | None, data: npt.NDArray[Any], layout: BufferLayout
) -> bool:
    """Check whether ``data`` needs a new buffer rather than an in-place overwrite."""
    count = int(data.shape[0]) if data.ndim > 0 else 0
    return count > 0 and (buffer is None or not buffer.matches(count, layout))


def allocate_typed_buffer(data: npt.NDArray[Any], layout: BufferLayout) -> TypedBuffer:
    """Allocate a new buffer holding ``data``.

    Nothing stays allocated if the upload fails.
    """
    array = as_element_array(data, layout)
    buffer = TypedBuffer(int(array.shape[0]), layout)
    try:
        buffer.upload(array)
    except BaseException:
        buffer.release()
        raise
    logger.debug("Allocated %r", buffer)
    return buffer


def sync_typed_buffer(
    buffer: TypedBuffer | None,
    data: npt.NDArray[Any],
    layout: BufferLayout,
) -> TypedBuffer | None:
    """Mirror a host array into a device buffer.

    The buffer is reallocated if and only if the element count or the element
    layout changed; otherwise its contents are overwritten in place. An empty
    array releases the buffer. A replacement is allocated and filled before
    the old buffer is released, so a failed allocation leaves ``buffer``
    intact.

    Args:
        buffer: The current buffer, or None if none is allocated.
        data: Host array of shape (count, stride), or (count,) for stride 1.
        layout: The element layout of the data.

    Returns:
        The buffer holding ``data``, or None if ``data`` is empty.
    """
    count = int(data.shape[0]) if data.ndim > 0 else 0

    if count == 0:
        if buffer is not None:
            logger.debug("Releasing %r", buffer)
            buffer.release()
        return None

    if not needs_reallocation(buffer, data, layout):
        buffer.upload(data)
        return buffer

    replacement = allocate_typed_buffer(data, layout)
    if buffer is not None:
        logger.debug("Releasing %r", buffer)
        buffer.release()
    return replacement


class ImageBuffer:
    """An RGB float image backed by a releasable vec3 field.

    The field is indexed (x, y) with y = 0 at the bottom row, matching the
    pixel loop of the trace kernel. NumPy images use (row, column) with row 0
    at the top, so conversions transpose and flip vertically.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        field: The backing Taichi vec3 field of shape (width, height).
    """

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {width}x{height}")

        self.width = width
        self.height = height

        builder = ti.FieldsBuilder()
        self.field = ti.Vector.field(3, dtype=ti.f32)
        builder.dense(ti.ij, (width, height)).place(self.field)
        self._tree: Any = builder.finalize()

    @property
    def released(self) -> bool:
        """Whether the backing memory has been released."""
        return self._tree is None

    def clear(self) -> None:
        """Fill the image with zeros."""
        self.field.fill(0.0)

    def from_numpy(self, image: npt.NDArray[np.floating[Any]]) -> None:
        """Load a (height, width, 3) image with row 0 at the top."""
        expected_shape = (self.height, self.width, 3)
        if image.shape != expected_shape:
            raise ValueError(f"Image shape {image.shape} doesn't match expected {expected_shape}")
        transposed = np.ascontiguousarray(
            np.transpose(np.flipud(image), (1, 0, 2)), dtype=np.float32
        )
        self.field.from_numpy(transposed)

    def to_numpy(self) -> npt.NDArray[np.float32]:
        """Read the image back as a (height, width, 3) array with row 0 at the top."""
        if self.released:
            raise RuntimeError("Cannot read a released image")
        image = self.field.to_numpy()
        image = np.flipud(np.transpose(image, (1, 0, 2)))
        return np.ascontiguousarray(image, dtype=np.float32)

    def release(self) -> None:
        """Release the backing memory. Safe to call more than once."""
        if self._tree is not None:
            self._tree.destroy()
            self._tree = None

    def __repr__(self) -> str:
        return f"ImageBuffer({self.width}x{self.height}, released={self.released})"
