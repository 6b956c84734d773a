"""Exporter SPI and implementations."""

from .base import BaseExporter
from .zstd_exporter import RecordFormat, ZstdStreamExporter, encode_record, iter_records

__all__ = ["BaseExporter", "RecordFormat", "ZstdStreamExporter", "encode_record", "iter_records"]
