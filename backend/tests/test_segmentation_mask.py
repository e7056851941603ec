import numpy as np
import pytest

from lane_sense.errors import CropError, HeadSelectionError, ShapeMismatchError
from lane_sense.segmentation_mask import (
    crop_rows,
    decode_head,
    decode_heads,
    make_masks,
    pick_seg_heads,
    upsample_nearest,
)


def _head(channels: int, h: int = 8, w: int = 6, fill: float = 0.0) -> np.ndarray:
    return np.full((1, channels, h, w), fill, dtype=np.float32)


# ---------------------------------------------------------------------------
# Head selection
# ---------------------------------------------------------------------------

def test_pick_heads_by_channel_count():
    da, ll = _head(2), _head(1)
    det = np.zeros((1, 255, 12, 20), dtype=np.float32)
    flat = np.zeros((1, 100, 6), dtype=np.float32)

    got_da, got_ll = pick_seg_heads([det, ll, flat, da])

    assert got_da is da
    assert got_ll is ll


def test_pick_heads_from_mapping():
    da, ll = _head(2), _head(1)
    got_da, got_ll = pick_seg_heads({"lane": ll, "drivable": da})
    assert got_da is da and got_ll is ll


def test_pick_heads_falls_back_to_larger_channel_count():
    big, small = _head(3), _head(1)
    got_da, got_ll = pick_seg_heads([small, big])
    assert got_da is big
    assert got_ll is small


@pytest.mark.parametrize(
    "outputs",
    [
        [],
        [_head(2)],
        [_head(2), np.zeros((2, 1, 8, 6), dtype=np.float32)],  # batch size 2
        [_head(2), np.zeros((1, 8, 6), dtype=np.float32)],     # 3-D
        [_head(2), None],
    ],
)
def test_pick_heads_needs_two_candidates(outputs):
    with pytest.raises(HeadSelectionError):
        pick_seg_heads(outputs)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def test_single_channel_threshold_boundary():
    t = np.array([1.0, 0.999, 0.0, 1.3, 0.5, -1.0], dtype=np.float32).reshape(1, 1, 1, 6)
    assert decode_head(t).tolist() == [[1, 0, 0, 1, 0, 0]]


def test_two_channel_argmax_is_strict():
    ch0 = [0.2, 0.5, 0.9, -3.0]
    ch1 = [0.3, 0.5, 0.1, -2.0]
    t = np.array([ch0, ch1], dtype=np.float32).reshape(1, 2, 1, 4)
    assert decode_head(t).tolist() == [[1, 0, 0, 1]]


def test_decoded_mask_is_binary_uint8():
    rng = np.random.default_rng(1)
    mask = decode_head(rng.normal(size=(1, 2, 16, 24)).astype(np.float32))
    assert mask.dtype == np.uint8
    assert mask.shape == (16, 24)
    assert mask.flags["C_CONTIGUOUS"]
    assert set(np.unique(mask)) <= {0, 1}


@pytest.mark.parametrize(
    "tensor",
    [
        np.zeros((1, 3, 4, 4), dtype=np.float32),
        np.zeros((2, 1, 4, 4), dtype=np.float32),
        np.zeros((1, 4, 4), dtype=np.float32),
        np.zeros((1, 1, 0, 4), dtype=np.float32),
    ],
)
def test_decode_rejects_bad_shapes(tensor):
    with pytest.raises(ShapeMismatchError):
        decode_head(tensor)


def test_decode_heads_requires_matching_resolution():
    with pytest.raises(ShapeMismatchError):
        decode_heads(_head(2, 8, 6), _head(1, 8, 8))


# ---------------------------------------------------------------------------
# Resampling
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "h, w, pad_top, pad_bottom",
    [(40, 30, 5, 7), (64, 64, 0, 0), (64, 64, 14, 14), (10, 3, 0, 9), (384, 640, 12, 12)],
)
def test_make_masks_output_shape(h, w, pad_top, pad_bottom):
    da, ll = make_masks(_head(2, h, w), _head(1, h, w), pad_top, pad_bottom)
    expected = (2 * (h - pad_top - pad_bottom), 2 * w)
    assert da.shape == expected
    assert ll.shape == expected


def test_make_masks_drops_padding_rows_only():
    h, w = 10, 4
    ll = _head(1, h, w)
    ll[0, 0, 2, :] = 1.0       # first content row
    ll[0, 0, 0, :] = 1.0       # padding row, must vanish
    ll[0, 0, 6, 3] = 1.0       # last content row, last column
    da = _head(2, h, w)

    _, ll_mask = make_masks(da, ll, pad_top=2, pad_bottom=3)

    assert ll_mask.shape == (10, 8)
    assert ll_mask[0:2].all()
    assert ll_mask[2:8].sum() == 0
    assert ll_mask[8:10, 6:8].all()
    assert ll_mask[8:10, :6].sum() == 0


@pytest.mark.parametrize("pad_top, pad_bottom", [(4, 4), (8, 0), (5, 6), (-1, 2)])
def test_crop_rows_rejects_exhausting_padding(pad_top, pad_bottom):
    with pytest.raises(CropError):
        crop_rows(np.zeros((8, 4), dtype=np.uint8), pad_top, pad_bottom)


def test_make_masks_crop_error():
    with pytest.raises(CropError):
        make_masks(_head(2), _head(1), pad_top=4, pad_bottom=4)


def test_upsample_nearest_repeats_pixels():
    mask = np.array([[1, 0], [0, 1]], dtype=np.uint8)
    assert upsample_nearest(mask).tolist() == [
        [1, 1, 0, 0],
        [1, 1, 0, 0],
        [0, 0, 1, 1],
        [0, 0, 1, 1],
    ]
