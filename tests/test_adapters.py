from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from dialogue_worker.adapters.s3_adapter import S3BlobStore
from dialogue_worker.adapters.sqs_adapter import SQSJobSourceAdapter

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123/dialogue-jobs"


@pytest.fixture
def sqs_adapter() -> SQSJobSourceAdapter:
    adapter = SQSJobSourceAdapter(queue_url=QUEUE_URL, wait_time=0)
    adapter.sqs = MagicMock()
    return adapter


def test_sqs_enqueue_wraps_job_in_message_body(sqs_adapter) -> None:
    job_id = sqs_adapter.enqueue("generate_video", "video-1", {"video_id": "video-1"})

    kwargs = sqs_adapter.sqs.send_message.call_args.kwargs
    assert kwargs["QueueUrl"] == QUEUE_URL
    assert json.loads(kwargs["MessageBody"]) == {"job": {
        "id": job_id,
        "job_type": "generate_video",
        "entity_id": "video-1",
        "payload": {"video_id": "video-1"},
    }}


def test_sqs_claim_reads_receive_count_as_attempts(sqs_adapter) -> None:
    sqs_adapter.sqs.receive_message.return_value = {"Messages": [{
        "MessageId": "m-1",
        "ReceiptHandle": "rh-1",
        "Body": json.dumps({"job": {"id": "job-1", "job_type": "analyze_dialogue",
                                    "entity_id": "dlg-1", "payload": {"dialogue_id": "dlg-1"}}}),
        "Attributes": {"ApproximateReceiveCount": "2"},
    }]}

    job = sqs_adapter.claim_job()

    assert job.id == "job-1"
    assert job.job_type == "analyze_dialogue"
    assert job.payload == {"dialogue_id": "dlg-1"}
    assert job.attempts == 2
    assert job.metadata["receipt_handle"] == "rh-1"


def test_sqs_claim_drops_unparseable_message(sqs_adapter) -> None:
    sqs_adapter.sqs.receive_message.return_value = {"Messages": [
        {"MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": "not json"},
    ]}

    assert sqs_adapter.claim_job() is None
    sqs_adapter.sqs.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="rh-1")


def test_sqs_empty_queue_returns_none(sqs_adapter) -> None:
    sqs_adapter.sqs.receive_message.return_value = {}

    assert sqs_adapter.claim_job() is None


def test_sqs_retryable_failure_resets_visibility(sqs_adapter) -> None:
    sqs_adapter.sqs.receive_message.return_value = {"Messages": [{
        "MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": json.dumps({"job": {"id": "job-1"}}),
    }]}
    job = sqs_adapter.claim_job()

    sqs_adapter.fail_job(job, "boom", retry=True)
    sqs_adapter.sqs.change_message_visibility.assert_called_once_with(
        QueueUrl=QUEUE_URL, ReceiptHandle="rh-1", VisibilityTimeout=0
    )

    sqs_adapter.fail_job(job, "boom")
    sqs_adapter.sqs.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="rh-1")


def test_sqs_requires_connect() -> None:
    with pytest.raises(RuntimeError):
        SQSJobSourceAdapter(queue_url=QUEUE_URL).claim_job()


@pytest.fixture
def s3_store() -> S3BlobStore:
    store = S3BlobStore(bucket="videos", region="eu-west-1", prefix="dev/")
    store.s3 = MagicMock()
    return store


def test_s3_put_returns_object_url(s3_store) -> None:
    url = s3_store.put("videos/u/d/1_avatar.mp4", b"mp4", "video/mp4")

    assert url == "https://videos.s3.eu-west-1.amazonaws.com/dev/videos/u/d/1_avatar.mp4"
    kwargs = s3_store.s3.put_object.call_args.kwargs
    assert kwargs["Key"] == "dev/videos/u/d/1_avatar.mp4"
    assert kwargs["ContentType"] == "video/mp4"
    assert kwargs["ServerSideEncryption"] == "AES256"


def test_s3_custom_endpoint_url() -> None:
    store = S3BlobStore(bucket="videos", endpoint_url="http://localhost:9000/")
    store.s3 = MagicMock()

    assert store.put("a.mp4", b"", "video/mp4") == "http://localhost:9000/videos/a.mp4"


def test_s3_signed_url_uses_default_ttl(s3_store) -> None:
    s3_store.s3.generate_presigned_url.return_value = "https://signed"

    assert s3_store.signed_url("audio/u/1.wav", ttl=None) == "https://signed"
    s3_store.s3.generate_presigned_url.assert_called_once_with(
        'get_object', Params={'Bucket': 'videos', 'Key': 'dev/audio/u/1.wav'}, ExpiresIn=3600
    )


def test_s3_delete_reports_client_errors(s3_store) -> None:
    s3_store.s3.delete_object.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "DeleteObject")

    assert s3_store.delete("a.mp4") is False


def test_sqs_claim_extends_visibility_for_long_jobs() -> None:
    adapter = SQSJobSourceAdapter(queue_url=QUEUE_URL, wait_time=0, visibility_timeout=1020)
    adapter.sqs = MagicMock()
    adapter.sqs.receive_message.return_value = {"Messages": [{
        "MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": json.dumps({"job": {"id": "job-1"}}),
    }]}

    job = adapter.claim_job()

    assert job.id == "job-1"
    adapter.sqs.change_message_visibility.assert_called_once_with(
        QueueUrl=QUEUE_URL, ReceiptHandle="rh-1", VisibilityTimeout=1020
    )


def test_sqs_claim_survives_visibility_error() -> None:
    adapter = SQSJobSourceAdapter(queue_url=QUEUE_URL, wait_time=0, visibility_timeout=600)
    adapter.sqs = MagicMock()
    adapter.sqs.receive_message.return_value = {"Messages": [{
        "MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": json.dumps({"job": {"id": "job-1"}}),
    }]}
    adapter.sqs.change_message_visibility.side_effect = ClientError(
        {"Error": {"Code": "ReceiptHandleIsInvalid"}}, "ChangeMessageVisibility"
    )

    assert adapter.claim_job().id == "job-1"
