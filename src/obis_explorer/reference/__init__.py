"""Static lesson constants.

Reference data that doesn't change with API calls: study-area polygons,
taxon identifiers, vocabulary URIs, OBIS node identifiers.

Adding a new module:
1. Create ``reference/{name}.py`` with constants
2. Re-export from this ``__init__.py``
"""

from obis_explorer.reference.geography import GULF_OF_ST_LAWRENCE_WKT as GULF_OF_ST_LAWRENCE_WKT
from obis_explorer.reference.geography import OBIS_CANADA_NODE_ID as OBIS_CANADA_NODE_ID
from obis_explorer.reference.taxa import DEEP_WATER_CORAL_ORDERS as DEEP_WATER_CORAL_ORDERS
from obis_explorer.reference.taxa import LAMNA_NASUS_APHIA_ID as LAMNA_NASUS_APHIA_ID
from obis_explorer.reference.taxa import MULTI_KINGDOM_SPECIES as MULTI_KINGDOM_SPECIES
from obis_explorer.reference.vocabulary import OBSERVED_LENGTH as OBSERVED_LENGTH
