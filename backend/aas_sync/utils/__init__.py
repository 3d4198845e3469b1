"""
Utility modules for identifiers and value types.
"""

from aas_sync.utils.identifiers import compose_key, decode_id, encode_id
from aas_sync.utils.value_types import XSD_TO_HTML_INPUT

__all__ = ["encode_id", "decode_id", "compose_key", "XSD_TO_HTML_INPUT"]
