"""FITS image loading and whole-frame pixel statistics."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO

import numpy as np

_BLOCK_SIZE = 2880
_CARD_SIZE = 80
_MAX_ADU = 65535
_HISTOGRAM_SIZE = 65536

# Big-endian pixel layouts the loader understands, keyed by BITPIX.
_PIXEL_TYPES = {16: ">i2", 32: ">i4", -32: ">f4", -64: ">f8"}

_QUOTED = re.compile(r"'((?:[^']|'')*)'")


@dataclass
class ImageStatistics:
    """Summary statistics of an image's pixel values."""

    width: int
    height: int
    mean: float
    median: float
    std_dev: float
    min: float
    max: float
    star_count: int | None = None
    hfr: float | None = None
    fwhm: float | None = None
    mad: float | None = None


def _card_value(field: str) -> Any:
    field = field.strip()
    if field.startswith("'"):
        match = _QUOTED.match(field)
        if match is None:
            return field
        return match.group(1).replace("''", "'").rstrip()
    text = field.split("/", 1)[0].strip()
    if text == "T":
        return True
    if text == "F":
        return False
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text.replace("D", "E"))
    except ValueError:
        return text


def _read_header(stream: BinaryIO) -> dict[str, Any]:
    header: dict[str, Any] = {}
    first = True
    while True:
        block = stream.read(_BLOCK_SIZE)
        if len(block) < _BLOCK_SIZE:
            raise ValueError("Failed to read FITS header: unexpected end of file")
        text = block.decode("ascii", errors="replace")
        for start in range(0, _BLOCK_SIZE, _CARD_SIZE):
            card = text[start:start + _CARD_SIZE]
            keyword = card[:8].strip()
            if first:
                if keyword != "SIMPLE":
                    raise ValueError("Not a FITS file: missing SIMPLE keyword")
                first = False
            if keyword == "END":
                return header
            if card[8:10] == "= " and keyword:
                header[keyword] = _card_value(card[10:])


def _header_int(header: dict[str, Any], key: str) -> int:
    value = header.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"FITS header keyword {key} is missing or not an integer")
    return value


def _scale_to_u16(values: np.ndarray) -> np.ndarray:
    finite = values[~np.isnan(values)]
    if finite.size == 0:
        return np.zeros(values.size, dtype=np.uint16)
    low = float(finite.min())
    high = float(finite.max())
    if not high > low:
        return np.zeros(values.size, dtype=np.uint16)
    with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
        scale = _MAX_ADU / (high - low)
        scaled = np.clip((values - low) * scale, 0.0, float(_MAX_ADU))
    scaled = np.nan_to_num(scaled, nan=0.0)
    return scaled.astype(np.uint16)


@dataclass(eq=False)
class FitsImage:
    """A 2-D image held as row-major 16-bit unsigned pixels."""

    width: int
    height: int
    data: np.ndarray

    def __post_init__(self) -> None:
        raw = np.asarray(self.data).ravel()
        if raw.size and (raw.min() < 0 or raw.max() > _MAX_ADU):
            raise ValueError("pixel values must lie in 0..65535")
        if raw.size != self.width * self.height:
            raise ValueError(
                f"Image dimensions {self.width}x{self.height} don't match "
                f"data length {raw.size}"
            )
        self.data = raw.astype(np.uint16)

    @classmethod
    def from_file(cls, path: str | Path) -> FitsImage:
        """Load the primary image of a FITS file, rescaled to 0..65535.

        Raises ValueError when the file is not a usable 2-D FITS image.
        """
        path = Path(path)
        with path.open("rb") as stream:
            header = _read_header(stream)
            bitpix = _header_int(header, "BITPIX")
            naxis = _header_int(header, "NAXIS")
            pixel_type = _PIXEL_TYPES.get(bitpix)
            if pixel_type is None:
                raise ValueError("Unsupported FITS data type")
            if naxis < 2:
                raise ValueError("FITS file does not contain 2D image data")
            shape = [_header_int(header, f"NAXIS{axis}") for axis in range(1, naxis + 1)]
            count = math.prod(shape)
            dtype = np.dtype(pixel_type)
            raw = stream.read(count * dtype.itemsize)
        if len(raw) < count * dtype.itemsize:
            raise ValueError(f"FITS file {path} is truncated")

        pixels = np.frombuffer(raw, dtype=dtype)
        bscale = float(header.get("BSCALE", 1.0))
        bzero = float(header.get("BZERO", 0.0))
        values = pixels.astype(np.float64) * bscale + bzero
        blank = header.get("BLANK")
        if bitpix > 0 and isinstance(blank, int) and not isinstance(blank, bool):
            values[pixels == blank] = 0.0

        width, height = shape[0], shape[1]
        if count == 0:
            raise ValueError("FITS file contains no image data")
        if width * height != count:
            raise ValueError(
                f"Image dimensions {width}x{height} don't match data length {count}"
            )
        return cls(width=width, height=height, data=_scale_to_u16(values))

    def calculate_basic_statistics(self) -> ImageStatistics:
        """Return pixel statistics without star measurements."""
        return self.calculate_statistics_with_mad()

    def calculate_statistics_with_mad(self) -> ImageStatistics:
        """Return mean, median, population deviation, range and MAD of the pixels."""
        data = self.data
        count = data.size
        if count == 0:
            raise ValueError("image holds no pixels")
        ordered = np.sort(data)
        mean = int(data.sum(dtype=np.uint64)) / count
        mid = count // 2
        if count % 2 == 0:
            median = (float(ordered[mid - 1]) + float(ordered[mid])) / 2.0
        else:
            median = float(ordered[mid])
        diffs = data.astype(np.float64) - mean
        std_dev = math.sqrt(float(np.dot(diffs, diffs)) / count)

        return ImageStatistics(
            width=self.width,
            height=self.height,
            mean=mean,
            median=median,
            std_dev=std_dev,
            min=float(ordered[0]),
            max=float(ordered[-1]),
            mad=self._mad_from_histogram(median),
        )

    def calculate_statistics(self) -> ImageStatistics:
        """Return pixel statistics; star fields are left unset."""
        stats = self.calculate_basic_statistics()
        return ImageStatistics(
            width=self.width,
            height=self.height,
            mean=stats.mean,
            median=stats.median,
            std_dev=stats.std_dev,
            min=stats.min,
            max=stats.max,
            mad=stats.mad,
        )

    def _mad_from_histogram(self, median: float) -> float:
        """Median absolute deviation found by stepping outward through a histogram."""
        counts = np.bincount(self.data, minlength=_HISTOGRAM_SIZE).tolist()
        half = self.data.size / 2.0
        down = math.floor(median)
        up = math.ceil(median)
        occurrences = 0

        while True:
            if down >= 0 and down != up:
                occurrences += counts[down] + (counts[up] if up < _HISTOGRAM_SIZE else 0)
            elif up < _HISTOGRAM_SIZE:
                occurrences += counts[up]
            if occurrences > half:
                return abs(up - median)
            down -= 1
            up += 1
            if down < 0 and up >= _HISTOGRAM_SIZE:
                break

        deviations = np.sort(np.abs(self.data.astype(np.float64) - median))
        mid = deviations.size // 2
        if deviations.size % 2 == 0:
            return float((deviations[mid - 1] + deviations[mid]) / 2.0)
        return float(deviations[mid])