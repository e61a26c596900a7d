"""Business logic for the editable chart grid."""
import base64
import logging
from typing import BinaryIO, Dict, List, Optional

from chartmaker import ChartMakerError

logger = logging.getLogger('chartmaker.chart')

ROWS = 3
COLS = 6

DEFAULT_TITLE = 'About You: Video Games/Anime'

DEFAULT_LABELS = [
    'Favorite Game of all Time',
    'Favorite Series',
    'Best Soundtrack',
    'Favorite Protagonist',
    'Favorite Villain',
    'Best Story',
    'Have not played but want to',
    'You Love Everyone Hates',
    'You Hate Everyone Loves',
    'Best Art Style',
    'Favorite Ending',
    'Favorite Boss Fight',
    'Childhood Game',
    'Relaxing Game',
    'Stressful Game',
    'Game you always come back to',
    'Guilty Pleasure',
    'Tons of Hours Played',
]

UPLOAD_REJECTED_MESSAGE = 'Please upload an image file (png/jpg/webp/etc).'
UPLOAD_READ_FAILED_MESSAGE = 'Failed to read the image file.'


class UploadRejected(ChartMakerError):
    """Raised when an uploaded file cannot be used as a cell image."""


def make_cell(label: str, image_url: Optional[str] = None) -> Dict:
    return {'label': label, 'imageUrl': image_url}


class ChartEditor:
    """In-memory chart: a title plus a fixed 3x6 grid of cells.

    Each cell is a dict ``{'label': str, 'imageUrl': Optional[str]}`` where
    ``imageUrl`` is a remote URL or a ``data:`` URL from an upload. At most
    one cell is selected; edits always target the selected cell and are
    silently ignored when nothing is selected.
    """

    def __init__(self, labels: Optional[List[str]] = None, title: str = DEFAULT_TITLE) -> None:
        labels = list(labels if labels is not None else DEFAULT_LABELS)
        size = ROWS * COLS
        # Short label lists are padded so the grid is always full
        labels += [f'Cell {i + 1}' for i in range(len(labels), size)]
        self.cells: List[Dict] = [make_cell(label) for label in labels[:size]]
        self.title = title
        self.selected_index: Optional[int] = None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selected_cell(self) -> Optional[Dict]:
        if self.selected_index is None:
            return None
        return self.cells[self.selected_index]

    def select(self, index: int) -> Dict:
        """Select the cell at *index* and return it.

        Raises:
            IndexError: *index* is outside the grid.
        """
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexError(f'Cell index must be an integer, got {index!r}')
        if not 0 <= index < len(self.cells):
            raise IndexError(f'Cell index {index} out of range 0..{len(self.cells) - 1}')
        self.selected_index = index
        return self.cells[index]

    def deselect(self) -> None:
        self.selected_index = None

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    _UNSET = object()

    def update_selected(self, label=_UNSET, image_url=_UNSET) -> bool:
        """Patch the selected cell with whichever fields are given.

        Returns:
            ``True`` if a cell was changed; ``False`` if nothing is selected.
        """
        if self.selected_index is None:
            return False
        cell = dict(self.cells[self.selected_index])
        if label is not self._UNSET:
            cell['label'] = '' if label is None else str(label)
        if image_url is not self._UNSET:
            cell['imageUrl'] = image_url or None
        self.cells[self.selected_index] = cell
        return True

    def clear_image(self) -> bool:
        """Remove the selected cell's image."""
        return self.update_selected(image_url=None)

    def set_title(self, title: str) -> None:
        self.title = '' if title is None else str(title)

    def handle_upload(self, filename: str, mimetype: str, stream: BinaryIO) -> bool:
        """Turn an uploaded image into a ``data:`` URL on the selected cell.

        Returns:
            ``False`` when no cell is selected (the upload is ignored).

        Raises:
            UploadRejected: The file is not an image or could not be read. The
                cell is left unchanged.
        """
        if self.selected_index is None:
            return False

        if not (mimetype or '').startswith('image/'):
            logger.info('Rejected upload %r with MIME type %r', filename, mimetype)
            raise UploadRejected(UPLOAD_REJECTED_MESSAGE)

        try:
            raw = stream.read()
        except (OSError, ValueError) as e:
            logger.warning('Could not read upload %r: %s', filename, e)
            raise UploadRejected(UPLOAD_READ_FAILED_MESSAGE) from e

        encoded = base64.b64encode(raw).decode('ascii')
        return self.update_selected(image_url=f'data:{mimetype};base64,{encoded}')

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def export_region(self) -> Dict:
        """Snapshot of what gets rasterised: the title and cells only."""
        return {
            'title': self.title,
            'rows': ROWS,
            'cols': COLS,
            'cells': [dict(c) for c in self.cells],
        }

    def to_dict(self) -> Dict:
        return {
            'title': self.title,
            'rows': ROWS,
            'cols': COLS,
            'cells': [dict(c) for c in self.cells],
            'selectedIndex': self.selected_index,
        }
