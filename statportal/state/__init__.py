"""
State Package
=============
Состояние загрузки данных: ресурс, пагинация, бесконечный список,
оптимистичные обновления и задержка ввода.
"""

from statportal.utils.request_stats import RequestStats

from .debounce import Debouncer
from .infinite import InfiniteList
from .optimistic import OptimisticUpdate
from .paginated import PaginatedQuery
from .resource import ApiResource

__all__ = [
    'ApiResource',
    'Debouncer',
    'InfiniteList',
    'OptimisticUpdate',
    'PaginatedQuery',
    'RequestStats',
]
