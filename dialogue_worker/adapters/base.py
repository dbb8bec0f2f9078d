"""
Abstract base classes for job sources, record stores and blob stores.

Defines the interface that all adapters must implement, enabling
easy swapping between job sources (Postgres, SQS) and storage
backends, and in-memory fakes for tests.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Sequence

from ..models import Job


class JobSourceAdapter(ABC):
    """Abstract base class for job source adapters"""

    def connect(self) -> None:
        """Open connections; no-op by default"""

    def close(self) -> None:
        """Release connections; no-op by default"""

    @abstractmethod
    def enqueue(self, job_type: str, entity_id: str, payload: Dict[str, Any]) -> str:
        """
        Queue a new job.

        Args:
            job_type: Kind of work (analyze_dialogue, generate_video)
            entity_id: ID of the dialogue or video the job acts on
            payload: Job-specific parameters

        Returns:
            ID of the queued job
        """
        pass

    @abstractmethod
    def claim_job(self) -> Optional[Job]:
        """
        Atomically claim a pending job.

        Returns:
            Job object if available, None if no jobs pending
        """
        pass

    @abstractmethod
    def complete_job(self, job: Job) -> None:
        """Mark a job as completed"""
        pass

    @abstractmethod
    def fail_job(self, job: Job, error: str, retry: bool = False) -> None:
        """
        Mark a job as failed.

        Args:
            job: The failed job
            error: Error message describing the failure
            retry: Return the job to the pending queue instead of failing it permanently
        """
        pass

    @abstractmethod
    def get_job_info(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    def get_pending_jobs(self) -> List[Job]:
        """
        Get list of pending jobs (for monitoring/debugging).

        Returns:
            List of pending job objects
        """
        pass


class RecordStore(ABC):
    """Keyed document store holding dialogues, videos and templates"""

    def connect(self) -> None:
        """Open connections; no-op by default"""

    def close(self) -> None:
        """Release connections; no-op by default"""

    def ping(self) -> bool:
        return True

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def insert(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a record; fields must carry an `id`"""
        pass

    @abstractmethod
    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Merge fields into an existing record without touching unspecified fields.

        Returns:
            The updated record, or None if it does not exist
        """
        pass

    @abstractmethod
    def update_if(self, collection: str, record_id: str, expected: Dict[str, Sequence[Any]],
                  fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Compare-and-swap update.

        Applies fields only if, for every key in expected, the record's
        current value is one of the listed values (None matches a missing
        or null field).

        Returns:
            The updated record, or None if the record is missing or a guard failed
        """
        pass

    @abstractmethod
    def list(self, collection: str, filters: Optional[Dict[str, Any]] = None,
             order_by: Optional[str] = None, descending: bool = False,
             page: int = 1, limit: int = 100) -> List[Dict[str, Any]]:
        """Records whose fields equal every filter value, ordered and paged"""
        pass

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        pass


class BlobStore(ABC):
    """Binary object store returning retrievable URLs"""

    def connect(self) -> None:
        """Open connections; no-op by default"""

    def close(self) -> None:
        """Release connections; no-op by default"""

    def ping(self) -> bool:
        return True

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str) -> str:
        """Store bytes at path and return the object URL"""
        pass

    @abstractmethod
    def get(self, path: str) -> bytes:
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        pass

    @abstractmethod
    def signed_url(self, path: str, ttl: int = 3600) -> str:
        pass
