"""
Data Ingestion Module
"""
from .csv_loader import CsvLoader, LoadResult, create_csv_loader
from .job_queue import CallableJob, IngestFileJob, JobQueue
from .record_store import RecordStore, SqlAlchemyRecordStore
from .scheduler import IngestionScheduler, start_ingestion_service, stop_ingestion_service

__all__ = [
    "CsvLoader",
    "LoadResult",
    "create_csv_loader",
    "CallableJob",
    "IngestFileJob",
    "JobQueue",
    "RecordStore",
    "SqlAlchemyRecordStore",
    "IngestionScheduler",
    "start_ingestion_service",
    "stop_ingestion_service",
]
