"""PNG export of the chart title and grid.

Rasterisation sits behind the :class:`ChartRenderer` interface so the
exporter can be driven by a fake in tests; :class:`PillowChartRenderer` is the
real implementation and draws the chart with Pillow.
"""
import base64
import io
import logging
import re
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import requests
from PIL import Image, ImageDraw, ImageFont, ImageOps

from chartmaker import ChartMakerError

logger = logging.getLogger('chartmaker.export')

EXPORT_FAILED_MESSAGE = (
    'Export failed. If this happens after adding external images, it may be a '
    'CORS issue. (Uploads should export reliably.)'
)

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
_DATA_URL = re.compile(r'^data:(?P<mime>[^;,]*)(?P<b64>;base64)?,(?P<data>.*)$', re.DOTALL)


class RenderError(ChartMakerError):
    """Raised by a renderer when the chart cannot be rasterised."""


class ExportFailed(ChartMakerError):
    """Raised when an export fails; the message is meant for the user."""


class ExportInProgress(ChartMakerError):
    """Raised when an export is requested while another one is running."""


def export_filename(title: str) -> str:
    """Build the download name for a chart titled *title*.

    Characters that are unsafe in file names are dropped and runs of
    whitespace become single spaces; an empty result falls back to ``chart``.
    """
    name = ' '.join(_UNSAFE_FILENAME_CHARS.sub('', title or '').split())
    return f"{name or 'chart'}.png"


def to_data_url(png: bytes) -> str:
    return 'data:image/png;base64,' + base64.b64encode(png).decode('ascii')


class ChartRenderer(ABC):
    """Turns an export region into PNG bytes."""

    @abstractmethod
    def render(self, region: Dict) -> bytes:
        """Rasterise *region* (``title``, ``rows``, ``cols``, ``cells``).

        Raises:
            RenderError: The region could not be drawn.
        """


class PillowChartRenderer(ChartRenderer):
    """Draws the chart the way the page lays it out, scaled by *pixel_ratio*.

    Layout in page pixels: a white panel with 16px padding, a 32px title
    with 16px below it, then the grid with 12px gaps and 2:3 cells that
    share ``grid_width`` minus the padding.
    """

    PADDING = 16
    TITLE_SIZE = 32
    TITLE_GAP = 16
    GAP = 12
    BORDER = 2
    LABEL_SIZE = 14
    LABEL_PADDING = 8
    LINE_HEIGHT = 1.2

    def __init__(self, pixel_ratio: int = 2, grid_width: int = 1100,
                 timeout: int = 10, session: Optional[requests.Session] = None) -> None:
        self.pixel_ratio = pixel_ratio
        self.grid_width = grid_width
        self._timeout = timeout
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(self, region: Dict) -> bytes:
        try:
            return self._render(region)
        except RenderError:
            raise
        except (requests.RequestException, OSError, ValueError, Image.DecompressionBombError) as e:
            raise RenderError(str(e)) from e

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def _px(self, value: float) -> int:
        return int(round(value * self.pixel_ratio))

    def _font(self, size: int) -> ImageFont.ImageFont:
        try:
            return ImageFont.truetype('DejaVuSans-Bold.ttf', self._px(size))
        except OSError:
            return ImageFont.load_default(size=self._px(size))

    def _render(self, region: Dict) -> bytes:
        rows = int(region.get('rows', 3))
        cols = int(region.get('cols', 6))
        cells = region.get('cells', [])

        inner = self.grid_width - 2 * self.PADDING
        cell_w = (inner - (cols - 1) * self.GAP) / cols
        cell_h = cell_w * 3 / 2
        title_h = self.TITLE_SIZE * self.LINE_HEIGHT
        height = (2 * self.PADDING + title_h + self.TITLE_GAP
                  + rows * cell_h + (rows - 1) * self.GAP)

        canvas = Image.new('RGBA', (self._px(self.grid_width), self._px(height)), 'white')
        draw = ImageDraw.Draw(canvas)

        title_font = self._font(self.TITLE_SIZE)
        # Drawn on a single line, so newlines and tabs collapse to spaces
        title = ' '.join((region.get('title') or '').split())
        title_w = draw.textlength(title, font=title_font)
        draw.text(((canvas.width - title_w) / 2, self._px(self.PADDING)),
                  title, fill='black', font=title_font)

        label_font = self._font(self.LABEL_SIZE)
        top = self.PADDING + title_h + self.TITLE_GAP
        for i in range(rows * cols):
            cell = cells[i] if i < len(cells) else {'label': f'Cell {i + 1}'}
            x = self.PADDING + (i % cols) * (cell_w + self.GAP)
            y = top + (i // cols) * (cell_h + self.GAP)
            box = (self._px(x), self._px(y), self._px(x + cell_w), self._px(y + cell_h))
            self._draw_cell(canvas, box, cell, label_font)

        out = io.BytesIO()
        canvas.convert('RGB').save(out, format='PNG')
        return out.getvalue()

    def _draw_cell(self, canvas: Image.Image, box: Tuple[int, int, int, int],
                   cell: Dict, font: ImageFont.ImageFont) -> None:
        x0, y0, x1, y1 = box
        size = (x1 - x0, y1 - y0)

        if cell.get('imageUrl'):
            cover = ImageOps.fit(self._load_image(cell['imageUrl']).convert('RGBA'),
                                 size, method=Image.Resampling.LANCZOS)
            canvas.alpha_composite(cover, (x0, y0))

        # Label strip pinned to the bottom edge
        lines = self._wrap(cell.get('label', ''), font, size[0] - 2 * self._px(self.LABEL_PADDING))
        line_h = self._px(self.LABEL_SIZE * self.LINE_HEIGHT)
        strip_h = len(lines) * line_h + 2 * self._px(self.LABEL_PADDING)
        strip = Image.new('RGBA', (size[0], strip_h), (255, 255, 255, int(255 * 0.88)))
        strip_draw = ImageDraw.Draw(strip)
        for n, line in enumerate(lines):
            strip_draw.text((self._px(self.LABEL_PADDING), self._px(self.LABEL_PADDING) + n * line_h),
                            line, fill='black', font=font)
        canvas.alpha_composite(strip, (x0, y1 - strip_h))

        ImageDraw.Draw(canvas).rectangle(box, outline='black', width=self._px(self.BORDER))

    @staticmethod
    def _wrap(text: str, font: ImageFont.ImageFont, width: int):
        measure = ImageDraw.Draw(Image.new('RGB', (1, 1)))
        lines, current = [], ''
        for word in text.split():
            candidate = f'{current} {word}'.strip()
            if current and measure.textlength(candidate, font=font) > width:
                lines.append(current)
                current = word
            else:
                current = candidate
        if current:
            lines.append(current)
        return lines or ['']

    def _load_image(self, url: str) -> Image.Image:
        match = _DATA_URL.match(url)
        if match:
            data = match.group('data')
            raw = base64.b64decode(data, validate=True) if match.group('b64') else data.encode('utf-8')
        else:
            resp = self._session.get(url, timeout=self._timeout)
            resp.raise_for_status()
            raw = resp.content
        img = Image.open(io.BytesIO(raw))
        img.load()
        return img


class ChartExporter:
    """Runs one export at a time through *renderer*."""

    def __init__(self, renderer: ChartRenderer) -> None:
        self._renderer = renderer
        self._lock = threading.Lock()

    @property
    def is_exporting(self) -> bool:
        return self._lock.locked()

    def export(self, region: Dict) -> Tuple[str, bytes]:
        """Rasterise *region* and return ``(filename, png_bytes)``.

        Raises:
            ExportInProgress: Another export has not finished yet.
            ExportFailed: The renderer failed; the message carries a hint
                about cross-origin images.
        """
        if not self._lock.acquire(blocking=False):
            raise ExportInProgress('An export is already running')
        try:
            png = self._renderer.render(region)
        except RenderError as e:
            logger.error('Export of %r failed: %s', region.get('title'), e)
            raise ExportFailed(EXPORT_FAILED_MESSAGE) from e
        finally:
            self._lock.release()
        return export_filename(region.get('title', '')), png
