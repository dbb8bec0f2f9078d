"""
Errors surfaced to callers of the pipeline controller.

Provider failures never reach this layer; they are absorbed by the
analysis and video stages. These cover lookups, preconditions and
per-dialogue concurrency.
"""


class PipelineError(Exception):
    """Base class for controller-facing errors"""


class DialogueNotFound(PipelineError):
    def __init__(self, dialogue_id: str):
        super().__init__(f"Dialogue not found: {dialogue_id}")
        self.dialogue_id = dialogue_id


class VideoNotFound(PipelineError):
    def __init__(self, video_id: str):
        super().__init__(f"Video not found: {video_id}")
        self.video_id = video_id


class AnalysisNotReady(PipelineError):
    def __init__(self, dialogue_id: str, analysis_status: str):
        super().__init__(
            f"Dialogue analysis must be completed before generating video "
            f"(dialogue {dialogue_id} is {analysis_status})"
        )
        self.dialogue_id = dialogue_id
        self.analysis_status = analysis_status


class TemplatesUnavailable(PipelineError):
    def __init__(self):
        super().__init__("Template data is currently unavailable")


class TemplateConfigurationError(PipelineError):
    def __init__(self, template_id: str):
        super().__init__(f"Selected template configuration is invalid: {template_id}")
        self.template_id = template_id


class GenerationInProgress(PipelineError):
    def __init__(self, dialogue_id: str):
        super().__init__(f"Video generation already in progress for dialogue {dialogue_id}")
        self.dialogue_id = dialogue_id


class UnsupportedLanguage(PipelineError):
    def __init__(self):
        super().__init__("Unsupported language. Only Hebrew and English are supported.")
