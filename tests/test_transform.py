"""Coordinate transform: scale recovery, Y flip and fallbacks."""

import pytest

from annobake.bake.transform import compute_scale_factor, to_pdf_space
from annobake.types import ViewerMetadata


def test_scale_factor_uses_smaller_axis_ratio():
    metadata = ViewerMetadata(originalScale=1.5, pageWidth=800, pageHeight=1000)

    assert compute_scale_factor(metadata, 400, 400) == pytest.approx(0.4)


def test_scale_factor_without_metadata_is_one():
    assert compute_scale_factor(None, 612, 792) == 1.0


def test_y_flip_with_height_and_no_metadata():
    geometry = to_pdf_space(x=30, y=100, width=50, height=20, metadata=None, page_width=595, page_height=842)

    assert geometry.scale_factor == 1.0
    assert geometry.x == 30
    assert geometry.y == 842 - 100 - 20 == 722
    assert geometry.anchor_y == 742


def test_missing_height_uses_fixed_ten_point_offset():
    metadata = ViewerMetadata(pageWidth=1224, pageHeight=1584)
    geometry = to_pdf_space(x=100, y=100, metadata=metadata, page_width=612, page_height=792)

    # scale 0.5; the 10 point offset is not scaled
    assert geometry.scale_factor == pytest.approx(0.5)
    assert geometry.y == pytest.approx(792 - 50 - 10)
    assert geometry.width is None
    assert geometry.height is None


def test_width_and_height_are_scaled():
    metadata = ViewerMetadata(pageWidth=800, pageHeight=1000)
    geometry = to_pdf_space(
        x=100,
        y=50,
        width=200,
        height=30,
        metadata=metadata,
        page_width=400,
        page_height=400,
    )

    assert geometry.x == pytest.approx(40)
    assert geometry.width == pytest.approx(80)
    assert geometry.height == pytest.approx(12)
    assert geometry.y == pytest.approx(400 - 20 - 12)


def test_transform_is_pure():
    metadata = ViewerMetadata(pageWidth=918, pageHeight=1188, originalScale=1.5)
    kwargs = dict(x=12.5, y=300, width=80, height=14, metadata=metadata, page_width=612, page_height=792)

    first = to_pdf_space(**kwargs)
    second = to_pdf_space(**kwargs)

    assert first == second


def test_metadata_parses_camel_case_and_rejects_zero_size():
    metadata = ViewerMetadata.model_validate(
        {'originalScale': 2, 'pageWidth': 1224, 'pageHeight': 1584, 'pdfWidth': 612}
    )
    assert metadata.page_width == 1224
    assert metadata.pdf_width == 612

    with pytest.raises(ValueError):
        ViewerMetadata.model_validate({'pageWidth': 0, 'pageHeight': 100})
