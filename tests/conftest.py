from __future__ import annotations

import base64
import io

import pytest
from PIL import Image
from reportlab.pdfgen.canvas import Canvas

from annobake.config import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the data directory at a temp dir and reset the settings cache."""
    monkeypatch.setenv('DATA_DIR', str(tmp_path / 'data'))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


def make_pdf(page_count: int = 2, size: tuple[float, float] = (612, 792)) -> bytes:
    buffer = io.BytesIO()
    canvas = Canvas(buffer, pagesize=size)
    for index in range(page_count):
        canvas.setFont('Helvetica', 12)
        canvas.drawString(72, size[1] - 72, f'Page {index + 1}')
        canvas.showPage()
    canvas.save()
    return buffer.getvalue()


def make_image(fmt: str = 'PNG', size: tuple[int, int] = (1, 1)) -> bytes:
    mode = 'RGBA' if fmt == 'PNG' else 'RGB'
    image = Image.new(mode, size, (20, 40, 200, 255) if mode == 'RGBA' else (20, 40, 200))
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def to_data_url(data: bytes, subtype: str = 'png') -> str:
    return f'data:image/{subtype};base64,' + base64.b64encode(data).decode('ascii')


@pytest.fixture
def two_page_pdf() -> bytes:
    return make_pdf(2)


@pytest.fixture
def three_page_pdf() -> bytes:
    return make_pdf(3)


@pytest.fixture
def png_bytes() -> bytes:
    return make_image('PNG', (1, 1))


@pytest.fixture
def viewer_metadata() -> dict:
    return {'originalScale': 1, 'pageWidth': 612, 'pageHeight': 792}
