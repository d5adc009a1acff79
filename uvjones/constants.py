"""
Physical and Array Constants.

MWA array location values are the ones written by the MWA metafits files.
"""

import numpy as np

# Speed of light in vacuum (m/s)
VEL_C = 299_792_458.0

# MWA array centre
MWA_LAT_DEG = -26.703319405555554
MWA_LONG_DEG = 116.67081523611111
MWA_HEIGHT_M = 377.827

MWA_LAT_RAD = np.deg2rad(MWA_LAT_DEG)
MWA_LONG_RAD = np.deg2rad(MWA_LONG_DEG)

# Array centre as used by cotter, kept for comparisons against legacy products
COTTER_MWA_LATITUDE_RADIANS = -0.4660608448386394
COTTER_MWA_LONGITUDE_RADIANS = 2.0362898668561042
COTTER_MWA_HEIGHT_METRES = 377.0

# GPS epoch (1980-01-06 00:00:00 UTC) expressed as MJD in the TAI scale
GPS_EPOCH_ISOT_UTC = "1980-01-06T00:00:00"

# Validity range of the precession-nutation model (TT, ISO dates)
FRAME_MODEL_VALID_FROM = "1900-01-01T00:00:00"
FRAME_MODEL_VALID_UNTIL = "2100-01-01T00:00:00"

# Jones inversion threshold on |det|
DEFAULT_SINGULAR_EPSILON = 1e-12

# Correlation order of a 4-pol visibility: XX, XY, YX, YY
POL_ORDER = ("XX", "XY", "YX", "YY")
N_POL = 4
