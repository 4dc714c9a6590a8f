"""
archiver.archiving - Publish / Retrieve / Promote / Cleanup
=============================================================

    - Archiver:     upload, bless_version, download orchestration
    - LocalLayout:  resource directory layout, atomic publish, `current`
                    swap, cleanup and temp sweep
"""

from archiver.archiving.archiver import Archiver
from archiver.archiving.layout import (
    CURRENT_VERSION_NAME,
    TMP_SUFFIX,
    LocalLayout,
    is_hex_version_name,
    new_version_id,
)

__all__ = [
    "Archiver",
    "LocalLayout",
    "CURRENT_VERSION_NAME",
    "TMP_SUFFIX",
    "is_hex_version_name",
    "new_version_id",
]
