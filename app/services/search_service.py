"""State machine behind the cover search overlay."""
import logging
from typing import Callable, Dict, List, Optional

from .chart_service import ChartEditor

logger = logging.getLogger('chartmaker.search')

SEARCH_TYPES = ('game', 'anime')

Searcher = Callable[[str], List[Dict]]


class SearchModal:
    """Transient search state for one editor.

    *searchers* maps each search type (``'game'``, ``'anime'``) to a callable
    taking the query text and returning result dicts
    ``{'id', 'title', 'year', 'imageUrl'}``. Any exception it raises is
    shown to the user as :attr:`error`.

    Overlapping searches are not reconciled: the search that finishes last
    owns :attr:`results`.
    """

    def __init__(self, editor: ChartEditor, searchers: Dict[str, Searcher]) -> None:
        self._editor = editor
        self._searchers = searchers
        self.is_open = False
        self.search_type = 'game'
        self.query = ''
        self.results: List[Dict] = []
        self.is_searching = False
        self.error: Optional[str] = None

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    @property
    def body_scroll_locked(self) -> bool:
        """The page behind the overlay must not scroll while it is open."""
        return self.is_open

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def handle_key(self, key: str) -> bool:
        """React to a key press; Escape closes the modal.

        Returns:
            ``True`` if the key closed the modal.
        """
        if self.is_open and key == 'Escape':
            self.close()
            return True
        return False

    # ------------------------------------------------------------------
    # Searching
    # ------------------------------------------------------------------

    def set_search_type(self, search_type: str) -> None:
        if search_type not in SEARCH_TYPES:
            raise ValueError(
                f"Unknown search type {search_type!r}, expected one of {', '.join(SEARCH_TYPES)}"
            )
        self.search_type = search_type

    def set_query(self, query: str) -> None:
        self.query = query or ''

    def run_search(self) -> List[Dict]:
        """Search the current type for the current query.

        A blank query does nothing. Previous results and errors are cleared
        before the call; on failure :attr:`error` holds the message.
        """
        q = self.query.strip()
        if not q:
            return self.results

        self.is_searching = True
        self.error = None
        self.results = []
        try:
            found = self._searchers[self.search_type](q)
            self.results = list(found or [])
        except Exception as e:
            logger.info('%s search for %r failed: %s', self.search_type, q, e)
            self.error = str(e) or 'Search failed'
        finally:
            self.is_searching = False
        return self.results

    def pick(self, result: Dict) -> bool:
        """Put *result*'s image on the selected cell and close the modal.

        Returns:
            ``False`` (and leaves the modal open) when no cell is selected.
        """
        if self._editor.selected_index is None:
            return False
        self._editor.update_selected(image_url=result.get('imageUrl'))
        self.close()
        return True

    def pick_index(self, index: int) -> bool:
        """Pick the result at *index* in :attr:`results`.

        Raises:
            IndexError: No result at that position.
        """
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self.results):
            raise IndexError(f'No search result at index {index!r}')
        return self.pick(self.results[index])

    def to_dict(self) -> Dict:
        return {
            'isOpen': self.is_open,
            'searchType': self.search_type,
            'query': self.query,
            'results': list(self.results),
            'isSearching': self.is_searching,
            'error': self.error,
            'bodyScrollLocked': self.body_scroll_locked,
        }
