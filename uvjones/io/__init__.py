"""
Format adapters: observation readers, block writers and Jones tables.

Importing this package registers the built-in adapters. The MeasurementSet
adapters import python-casacore only when instantiated.
"""

from uvjones.io.base import (
    VisReader,
    VisWriter,
    register_reader,
    register_writer,
    get_reader,
    get_writer,
    available_readers,
    available_writers,
)
from uvjones.io.memory import MemoryVisReader, MemoryVisWriter
from uvjones.io.table_io import (
    save_jones_table,
    load_jones_table,
    list_jones_terms,
    get_table_info,
    jones_for_observation,
    HDF5VisWriter,
)
from uvjones.io.ms_reader import MSVisReader, MSVisWriter
from uvjones.io.uvfits import UVFITSWriter, encode_uvfits_baseline, decode_uvfits_baseline

__all__ = [
    "VisReader",
    "VisWriter",
    "register_reader",
    "register_writer",
    "get_reader",
    "get_writer",
    "available_readers",
    "available_writers",
    "MemoryVisReader",
    "MemoryVisWriter",
    "save_jones_table",
    "load_jones_table",
    "list_jones_terms",
    "get_table_info",
    "jones_for_observation",
    "HDF5VisWriter",
    "MSVisReader",
    "MSVisWriter",
    "UVFITSWriter",
    "encode_uvfits_baseline",
    "decode_uvfits_baseline",
]
