"""Local store models — re-exports every partition table.

Import from here:  from possync.models import LocalOrder, ConflictRecord, ...
"""

from .base import Base  # noqa: F401

# Catalog mirror
from .catalog import LocalCustomer, LocalProduct, LocalSetting  # noqa: F401

# Locally captured sales
from .orders import LocalOrder  # noqa: F401

# Conflicts & timelines
from .sync import ConflictRecord, SyncLogEntry  # noqa: F401
