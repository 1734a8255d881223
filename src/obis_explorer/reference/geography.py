"""Study areas and OBIS nodes used in the lesson."""

# Box around the Atlantic approach and the Gulf of St. Lawrence.
# Drawn with https://obis.org/maptool/ (any WKT generator works).
GULF_OF_ST_LAWRENCE_WKT = (
    "POLYGON ((-59.85352 46.25585, -66.79688 43.51669, -65.83008 38.54817, "
    "-49.65820 38.54817, -48.42773 46.61926, -56.16211 54.16243, "
    "-71.45508 47.21957, -59.85352 46.25585))"
)

# OBIS Canada regional node
OBIS_CANADA_NODE_ID = "7dfb2d90-9317-434d-8d4e-64adf324579a"
