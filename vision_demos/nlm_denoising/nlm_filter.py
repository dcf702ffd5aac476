"""
Brute-force non-local means filter.

Every output pixel is a weighted average of the pixels in its search window.
A candidate's weight comes from the sum of squared differences between the
template patch around it and the template patch around the target pixel,
looked up in a precomputed Gaussian weight table.

Reference:
    A. Buades, B. Coll, J.M. Morel "A non local algorithm for image denoising"
    IEEE Computer Vision and Pattern Recognition 2005, Vol 2, pp: 60-65, 2005.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import cv2
import numpy as np

try:
    from .config import InvalidParameterError, NLMParameters
except ImportError:
    from config import InvalidParameterError, NLMParameters


logger = logging.getLogger(__name__)

# Weights below this value are treated as zero
WEIGHT_CUTOFF = 0.001

# Output rows handled by one worker task
ROWS_PER_TASK = 16


def build_weight_table(h: float, sigma: float = 0.0, channels: int = 1) -> np.ndarray:
    """
    Build the lookup from quantized patch distance to similarity weight.

    Args:
        h: Filter strength; larger values let less similar patches contribute
        sigma: Noise standard deviation, 0 to reuse h
        channels: Number of image channels

    Returns:
        np.ndarray: float64 table with 256 * 256 * channels entries, zero from the
        first entry below WEIGHT_CUTOFF onward
    """
    gauss_sd = h if sigma == 0.0 else sigma
    h_squared = float(h) * float(h)
    if h_squared == 0.0:
        raise InvalidParameterError(f"h={h} is too small to build a weight table")

    color_coeff = -1.0 / (channels * h_squared)
    if not np.isfinite(color_coeff):
        raise InvalidParameterError(f"h={h} is too small to build a weight table")

    index = np.arange(256 * 256 * channels, dtype=np.float64)
    weights = np.exp(np.maximum(index - 2.0 * gauss_sd * gauss_sd, 0.0) * color_coeff)

    below = np.flatnonzero(weights < WEIGHT_CUTOFF)
    if below.size:
        weights[below[0]:] = 0.0
    return weights


def pad_image(image: np.ndarray, border: int) -> np.ndarray:
    """Replicate the image edges by `border` pixels on every side."""
    return cv2.copyMakeBorder(image, border, border, border, border, cv2.BORDER_REPLICATE)


def _image_channels(image) -> int:
    if not isinstance(image, np.ndarray) or image.dtype != np.uint8:
        raise InvalidParameterError("Image must be a uint8 numpy array")
    if image.ndim == 2:
        channels = 1
    elif image.ndim == 3 and image.shape[2] in (1, 3):
        channels = image.shape[2]
    else:
        raise InvalidParameterError(f"Unsupported image shape {image.shape}, expected 1 or 3 channels")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidParameterError(f"Image is empty: {image.shape}")
    return channels


def _box_sum(values: np.ndarray, size: int) -> np.ndarray:
    """Sum of every size x size window, computed exactly with an integral image."""
    integral = np.zeros((values.shape[0] + 1, values.shape[1] + 1), dtype=np.int64)
    integral[1:, 1:] = values.astype(np.int64).cumsum(axis=0).cumsum(axis=1)
    return (integral[size:, size:] - integral[:-size, size:]
            - integral[size:, :-size] + integral[:-size, :-size])


def filter_row_block(
    padded: np.ndarray,
    weights: np.ndarray,
    out: np.ndarray,
    row_start: int,
    row_end: int,
    template_window_size: int,
    search_window_size: int
):
    """
    Denoise output rows [row_start, row_end) into `out`.

    `padded` is the int32 (rows, cols, channels) input padded by
    template radius + search radius. Only `out[row_start:row_end]` is written,
    so blocks with disjoint row ranges can run concurrently.
    """
    tr = template_window_size >> 1
    sr = search_window_size >> 1
    area = template_window_size * template_window_size

    n_rows = row_end - row_start
    n_cols = out.shape[1]
    span_rows = n_rows + template_window_size - 1
    span_cols = n_cols + template_window_size - 1

    # Top-left corner of the template region around the target pixels
    top = row_start + sr
    left = sr
    target = padded[top:top + span_rows, left:left + span_cols]

    total_weight = np.zeros((n_rows, n_cols), dtype=np.float64)
    accumulated = np.zeros((n_rows, n_cols, out.shape[2]), dtype=np.float64)

    for dy in range(-sr, search_window_size - sr):
        for dx in range(-sr, search_window_size - sr):
            candidate = padded[top + dy:top + dy + span_rows, left + dx:left + dx + span_cols]

            diff = candidate - target
            squared = (diff * diff).sum(axis=2)
            distance = _box_sum(squared, template_window_size) // area

            weight = weights[distance]
            total_weight += weight
            accumulated += weight[..., None] * candidate[tr:tr + n_rows, tr:tr + n_cols]

    centre = target[tr:tr + n_rows, tr:tr + n_cols]

    # All candidates maximally dissimilar: keep the pixel itself
    degenerate = total_weight == 0.0
    safe_total = np.where(degenerate, 1.0, total_weight)
    result = np.where(degenerate[..., None], centre, accumulated / safe_total[..., None])

    out[row_start:row_end] = np.clip(np.rint(result), 0, 255).astype(np.uint8)


def nonlocal_means_filter(
    src: np.ndarray,
    template_window_size: int,
    search_window_size: int,
    h: float,
    sigma: float = 0.0,
    dest: Optional[np.ndarray] = None,
    workers: Optional[int] = None
) -> np.ndarray:
    """
    Apply the non-local means filter to a grayscale or colour image.

    Args:
        src: uint8 image, (rows, cols) or (rows, cols, channels) with 1 or 3 channels
        template_window_size: Side of the patch compared between pixels
        search_window_size: Side of the neighborhood candidates are drawn from,
            must be larger than template_window_size
        h: Filter strength
        sigma: Noise standard deviation, 0 to reuse h
        dest: Optional output buffer with the same shape as src, filled in place
        workers: Number of threads, defaults to the CPU count

    Returns:
        np.ndarray: Denoised image with the same shape as src

    Raises:
        InvalidParameterError: If the parameters, the image or dest are invalid.
            Nothing is written to dest in that case.
    """
    params = NLMParameters(
        template_window_size=int(template_window_size),
        search_window_size=int(search_window_size),
        h=float(h),
        sigma=float(sigma)
    )
    params.validate()
    channels = _image_channels(src)

    if dest is not None and (not isinstance(dest, np.ndarray)
                             or dest.shape != src.shape or dest.dtype != np.uint8):
        raise InvalidParameterError("dest must be a uint8 array with the same shape as src")

    weights = build_weight_table(params.h, params.sigma, channels)

    rows, cols = src.shape[:2]
    border = (params.template_window_size >> 1) + (params.search_window_size >> 1)
    plane = np.ascontiguousarray(src if src.ndim == 2 or channels == 3 else src[:, :, 0])
    padded = pad_image(plane, border).reshape(rows + 2 * border, cols + 2 * border, channels)
    padded = padded.astype(np.int32)

    out = np.empty((rows, cols, channels), dtype=np.uint8)
    blocks = [(start, min(start + ROWS_PER_TASK, rows)) for start in range(0, rows, ROWS_PER_TASK)]
    workers = workers or os.cpu_count() or 1
    workers = max(1, min(workers, len(blocks)))

    logger.debug(f"NLM {rows}x{cols}x{channels} template={params.template_window_size} "
                 f"search={params.search_window_size} h={params.h} on {workers} worker(s)")

    if workers == 1:
        for start, end in blocks:
            filter_row_block(padded, weights, out, start, end,
                             params.template_window_size, params.search_window_size)
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(filter_row_block, padded, weights, out, start, end,
                                params.template_window_size, params.search_window_size)
                for start, end in blocks
            ]
            for future in futures:
                future.result()

    result = out.reshape(src.shape)
    if dest is None:
        return result
    dest[...] = result
    return dest
