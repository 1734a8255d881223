"""Taxa used in the lesson queries."""

# Porbeagle shark, WoRMS AphiaID
LAMNA_NASUS_APHIA_ID = 105841

# Deep-water (cold-water) corals: stony, black and soft corals.
# Gorgonians sit inside Alcyonacea in the classification OBIS uses.
DEEP_WATER_CORAL_ORDERS: tuple[str, ...] = ("Scleractinia", "Antipatharia", "Alcyonacea")

# "Deep" for the coral assignment: beyond 2000 m
DEEP_WATER_MIN_DEPTH_M: float = 2000.0

# One species each from insects, birds and plants, for the query that
# spans aggregators (GBIF holds the terrestrial records OBIS lacks)
MULTI_KINGDOM_SPECIES: tuple[str, ...] = (
    "Danaus plexippus",
    "Accipiter striatus",
    "Pinus contorta",
)
