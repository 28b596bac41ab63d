"""Compression codec for map documents."""

from mapindex.codec.artifact import compress_and_save, read_artifact, write_artifact
from mapindex.codec.compressor import CompressionResult, MapCodec, canonicalize
from mapindex.codec.schema import CompressionSchema, load_schema

__all__ = [
    "CompressionResult",
    "CompressionSchema",
    "MapCodec",
    "canonicalize",
    "compress_and_save",
    "load_schema",
    "read_artifact",
    "write_artifact",
]
