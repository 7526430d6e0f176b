"""
SecHub ORM models package.

Re-exports every model class so that consumers can import directly from
``sechub.models`` instead of reaching into individual submodules::

    from sechub.models import CVEEntry, Exploit
"""

from sechub.models.cve import CVEEntry
from sechub.models.exploit import Exploit

__all__: list[str] = [
    "CVEEntry",
    "Exploit",
]
