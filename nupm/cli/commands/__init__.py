"""CLI command modules."""

from .query import (
    cmd_search,
    cmd_find,
    cmd_list,
    cmd_depends,
    query_options,
)
from .install import (
    cmd_install,
    cmd_uninstall,
    cmd_download,
)
from .source import (
    cmd_source_list,
    cmd_source_add,
    cmd_source_remove,
)

__all__ = [
    'cmd_search', 'cmd_find', 'cmd_list', 'cmd_depends', 'query_options',
    'cmd_install', 'cmd_uninstall', 'cmd_download',
    'cmd_source_list', 'cmd_source_add', 'cmd_source_remove',
]
