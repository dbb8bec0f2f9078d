"""
AWS SQS adapter for job source.

Provides pull-based job polling from SQS queues.
"""

import boto3
import json
import uuid
import logging
from typing import Optional, Dict, Any, List
from botocore.exceptions import ClientError

from .base import JobSourceAdapter
from ..models import Job

logger = logging.getLogger("dialogue_worker")


class SQSJobSourceAdapter(JobSourceAdapter):
    """AWS SQS implementation of job source adapter"""

    def __init__(self, queue_url: str, region: str = "us-east-1", max_messages: int = 1, wait_time: int = 20,
                 visibility_timeout: Optional[int] = None):
        self.queue_url = queue_url
        self.region = region
        self.max_messages = max_messages
        self.wait_time = wait_time
        self.visibility_timeout = visibility_timeout
        self.sqs = None

    def connect(self):
        """Initialize SQS client"""
        try:
            self.sqs = boto3.client('sqs', region_name=self.region)
            logger.info(f"SQS job source connected to queue: {self.queue_url}")
        except Exception as e:
            logger.error(f"Failed to connect to SQS: {e}")
            raise

    def _require_client(self):
        if not self.sqs:
            raise RuntimeError("SQS client not initialized. Call connect() first.")

    def enqueue(self, job_type: str, entity_id: str, payload: Dict[str, Any]) -> str:
        self._require_client()
        job_id = str(uuid.uuid4())
        job_type = getattr(job_type, "value", job_type)
        self.sqs.send_message(
            QueueUrl=self.queue_url,
            MessageBody=json.dumps({
                'job': {
                    'id': job_id,
                    'job_type': job_type,
                    'entity_id': entity_id,
                    'payload': payload
                }
            })
        )
        logger.info(f"Enqueued {job_type} job {job_id} for {entity_id} on SQS")
        return job_id

    def claim_job(self) -> Optional[Job]:
        """Poll SQS for messages and claim a job"""
        self._require_client()

        try:
            response = self.sqs.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=self.max_messages,
                WaitTimeSeconds=self.wait_time,
                AttributeNames=['ApproximateReceiveCount'],
                MessageAttributeNames=['All']
            )

            messages = response.get('Messages', [])
            if not messages:
                return None

            message = messages[0]
            receipt_handle = message['ReceiptHandle']

            try:
                body = json.loads(message['Body'])
                job_data = body.get('job', {})

                job = Job(
                    id=job_data.get('id', message['MessageId']),
                    job_type=job_data.get('job_type', ''),
                    entity_id=job_data.get('entity_id', ''),
                    payload=job_data.get('payload') or {},
                    status='processing',
                    attempts=int(message.get('Attributes', {}).get('ApproximateReceiveCount', 1)),
                    metadata={
                        'receipt_handle': receipt_handle,
                        'message_id': message['MessageId']
                    }
                )

                self._hold_message(receipt_handle, job.id)
                logger.info(f"Claimed SQS {job.job_type} job {job.id} for {job.entity_id}")
                return job

            except json.JSONDecodeError as e:
                logger.error(f"Failed to parse SQS message: {e}")
                self.sqs.delete_message(
                    QueueUrl=self.queue_url,
                    ReceiptHandle=receipt_handle
                )
                return None

        except ClientError as e:
            logger.error(f"SQS error claiming job: {e}")
            return None

    def _hold_message(self, receipt_handle: str, job_id: str) -> None:
        """Keep the message hidden for the whole run of a claimed job"""
        if not self.visibility_timeout:
            return
        try:
            self.sqs.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=self.visibility_timeout
            )
        except ClientError as e:
            logger.warning(f"Could not extend visibility for job {job_id}: {e}")

    def complete_job(self, job: Job) -> None:
        """Delete message from SQS queue"""
        self._require_client()
        self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=job.metadata['receipt_handle'])
        logger.info(f"Job {job.id} completed for {job.entity_id}")

    def fail_job(self, job: Job, error: str, retry: bool = False) -> None:
        """Make the message visible again for a retry, or drop it"""
        self._require_client()
        receipt_handle = job.metadata['receipt_handle']
        if retry:
            self.sqs.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=0
            )
            logger.error(f"Job {job.id} failed, returned to queue: {error}")
        else:
            self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
            logger.error(f"Job {job.id} failed permanently: {error}")

    def get_job_info(self, job_id: str) -> Optional[Job]:
        """SQS cannot look up a single message"""
        logger.warning("SQS doesn't support job info retrieval")
        return None

    def get_pending_jobs(self) -> List[Job]:
        """SQS cannot peek at messages"""
        logger.warning("SQS doesn't support pending jobs retrieval")
        return []

    def close(self):
        """Close SQS connection"""
        self.sqs = None
        logger.info("SQS job source connection closed")
