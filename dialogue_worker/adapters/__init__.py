"""
Adapter pattern implementations for job sources, record stores and blob stores.

This module provides abstract base classes and concrete implementations
for job sources (Postgres, SQS), the Postgres record store and the S3
blob store.
"""

from .base import JobSourceAdapter, RecordStore, BlobStore
from .postgres_adapter import PostgresJobSourceAdapter, PostgresRecordStore
from .s3_adapter import S3BlobStore
from .sqs_adapter import SQSJobSourceAdapter

__all__ = [
    'JobSourceAdapter',
    'RecordStore',
    'BlobStore',
    'PostgresJobSourceAdapter',
    'PostgresRecordStore',
    'S3BlobStore',
    'SQSJobSourceAdapter'
]
