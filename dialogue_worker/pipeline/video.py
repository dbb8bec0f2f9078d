"""
Avatar video generation stage.

Tries the primary provider and then the secondary one, bounded by an outer
retry count, then copies the provider's media into the blob store. The
stored URL, never the provider's transient URL, is the result. Nothing
raised by a provider or by the upload escapes generate().
"""

import logging
from typing import Callable, Optional, Sequence

import requests

from ..adapters.base import BlobStore
from ..models import VideoGenerationPayload, VideoProvider, VideoResult, VideoStatus
from ..providers.base import (
    AvatarVideoAdapter,
    ProviderChainExhausted,
    ProviderContractViolation,
    SynthesisResult,
)
from ..logging_setup import log_exception
from .chain import RetryingProviderChain
from .util import video_storage_path

logger = logging.getLogger("dialogue_worker")

VIDEO_CONTENT_TYPE = "video/mp4"


def download_media(url: str, timeout: float = 120) -> bytes:
    """Fetch the provider's rendered media"""
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.content


class VideoGenerationStage:
    """Dual-provider avatar synthesis followed by durable storage upload"""

    def __init__(self, adapters: Sequence[AvatarVideoAdapter], blob_store: BlobStore,
                 provider_retry_limit: int = 2, storage_retry_limit: int = 3,
                 timeout: float = 120,
                 downloader: Optional[Callable[[str, float], bytes]] = None):
        self.adapters = list(adapters)
        self.blob_store = blob_store
        self.provider_retry_limit = provider_retry_limit
        self.storage_retry_limit = storage_retry_limit
        self.timeout = timeout
        self.downloader = downloader or download_media
        # Each outer iteration tries every provider once, in order
        self.chain = RetryingProviderChain(max_retries=0, label="video provider")

    def generate(self, payload: VideoGenerationPayload, user_id: str, dialogue_id: str,
                 template_id: str) -> VideoResult:
        """
        Generate an avatar video and store it.

        Returns:
            VideoResult with status completed and the blob-store URL, or
            status failed with an error message and an empty video_url
        """
        synthesis: Optional[SynthesisResult] = None
        provider: Optional[VideoProvider] = None
        error_message = None

        for attempt in range(self.provider_retry_limit):
            try:
                logger.info(
                    f"Video generation attempt {attempt + 1}/{self.provider_retry_limit} "
                    f"for dialogue {dialogue_id}, template {template_id}"
                )
                outcome = self.chain.run(self.adapters, lambda adapter: self._synthesize(adapter, payload))
                synthesis = outcome.value
                provider = self.adapters[outcome.position].provider
                break
            except ProviderChainExhausted as e:
                provider = self._provider_named(e.last_provider) or provider
                error_message = str(e.errors[-1][1]) if e.errors else str(e)
                logger.error(f"Video providers failed on attempt {attempt + 1} for dialogue {dialogue_id}: {e}")
            except Exception as e:
                log_exception(logger, f"Unexpected error generating video for dialogue {dialogue_id}: {e}")
                error_message = str(e)

        if synthesis is None:
            return VideoResult(
                video_url="",
                provider=provider,
                status=VideoStatus.FAILED,
                error_message=f"Both video providers failed: {error_message or 'no provider produced a video'}",
            )

        logger.info(f"Video synthesized by {provider.value} for dialogue {dialogue_id}, uploading to storage")

        try:
            path, storage_url = self._upload_with_retry(synthesis.media_url, user_id, dialogue_id)
        except Exception as e:
            logger.error(f"Failed to upload video to storage for dialogue {dialogue_id}: {e}")
            return VideoResult(
                video_url="",
                provider=provider,
                status=VideoStatus.FAILED,
                error_message=str(e),
                provider_response=synthesis.provider_response,
            )

        return VideoResult(
            video_url=storage_url,
            provider=provider,
            status=VideoStatus.COMPLETED,
            duration=synthesis.duration,
            storage_path=path,
            provider_response=synthesis.provider_response,
        )

    @staticmethod
    def _synthesize(adapter: AvatarVideoAdapter, payload: VideoGenerationPayload) -> SynthesisResult:
        result = adapter.synthesize(payload)
        if result is None or not result.media_url:
            raise ProviderContractViolation(adapter.name, "did not return a video URL")
        return result

    def _upload_with_retry(self, media_url: str, user_id: str, dialogue_id: str, retry: int = 0):
        try:
            media = self.downloader(media_url, self.timeout)
            path = video_storage_path(user_id, dialogue_id)
            url = self.blob_store.put(path, media, VIDEO_CONTENT_TYPE)
            return path, url
        except Exception as e:
            logger.warning(f"Video storage upload failed (attempt {retry + 1}): {e}")
            if retry < self.storage_retry_limit:
                return self._upload_with_retry(media_url, user_id, dialogue_id, retry + 1)
            raise

    def _provider_named(self, name: Optional[str]) -> Optional[VideoProvider]:
        for adapter in self.adapters:
            if adapter.name == name:
                return adapter.provider
        return None
