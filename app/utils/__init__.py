"""
Utils package
"""
from .data_utils import (
    get_request_data,
    require_data,
    require_table,
    require_updates
)
from .network_utils import (
    get_network_addresses
)

__all__ = [
    'get_request_data',
    'require_data',
    'require_table',
    'require_updates',
    'get_network_addresses'
]
