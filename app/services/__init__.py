"""Services package — expose all concrete services from one import."""
from .chart_service import ChartEditor, UploadRejected
from .search_service import SearchModal
from .export_service import (
    ChartExporter, ChartRenderer, PillowChartRenderer,
    RenderError, ExportFailed, ExportInProgress,
)

__all__ = [
    'ChartEditor',
    'UploadRejected',
    'SearchModal',
    'ChartExporter',
    'ChartRenderer',
    'PillowChartRenderer',
    'RenderError',
    'ExportFailed',
    'ExportInProgress',
]
