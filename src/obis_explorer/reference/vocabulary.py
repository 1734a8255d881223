"""Measurement type URIs (NERC Vocabulary Server, collection P01).

Definitions resolve at the URI itself; browse the terms OBIS holds at
https://mof.obis.org/
"""

# Length of biological entity specified elsewhere (observed length)
OBSERVED_LENGTH = "http://vocab.nerc.ac.uk/collection/P01/current/OBSINDLX/"

# Abundance of biological entity specified elsewhere per unit area of the bed
ABUNDANCE_PER_AREA = "http://vocab.nerc.ac.uk/collection/P01/current/SDBIOL02/"
