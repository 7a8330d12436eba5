"""
Error taxonomy for the video processing pipeline.

Every stage failure is a ProcessingError carrying the stage where it
happened, a message and the original exception. Subclasses tell the
orchestrator whether the failure is fatal and which metrics error
counter to bump.
"""

from app.models.schemas import ProcessingStage


class ProcessingError(Exception):
    """
    Pipeline stage error with context.

    Attributes:
        stage: Processing stage where error occurred
        message: Error description
        cause: Original exception (if any)
    """

    error_kind = "processing_error"
    message_prefix = "Processing failed"
    fatal = True

    def __init__(
        self,
        stage: ProcessingStage,
        message: str,
        cause: Exception | None = None,
    ):
        self.stage = stage
        self.message = message
        self.cause = cause
        super().__init__(f"[{stage.value}] {message}")

    @property
    def user_message(self) -> str:
        """Message persisted to the DB and shown to pollers."""
        return f"{self.message_prefix}: {self.message}"


class ValidationError(ProcessingError):
    """Input is unreadable or corrupt."""

    error_kind = "validation_error"
    message_prefix = "Validation failed"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ProcessingStage.VALIDATING, message, cause)


class MetadataError(ProcessingError):
    """Required metadata could not be extracted."""

    error_kind = "metadata_extraction_error"
    message_prefix = "Metadata extraction failed"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ProcessingStage.EXTRACTING_METADATA, message, cause)


class ThumbnailError(ProcessingError):
    error_kind = "thumbnail_error"
    message_prefix = "Thumbnail generation failed"
    fatal = False

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ProcessingStage.GENERATING_THUMBNAIL, message, cause)


class PosterError(ProcessingError):
    error_kind = "poster_error"
    message_prefix = "Poster generation failed"
    fatal = False

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ProcessingStage.GENERATING_POSTER, message, cause)


class HlsTranscodeError(ProcessingError):
    """No quality could be produced (a partial failure is not an error)."""

    error_kind = "hls_transcoding_error"
    message_prefix = "HLS transcoding failed"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ProcessingStage.TRANSCODING_HLS, message, cause)


class StorageError(ProcessingError):
    error_kind = "file_move_error"
    message_prefix = "File move failed"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ProcessingStage.MOVING_FILE, message, cause)


class DatabaseError(ProcessingError):
    """Finalization write failed. Relocated media must be kept."""

    error_kind = "database_update_error"
    message_prefix = "Database update failed"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ProcessingStage.UPDATING_DATABASE, message, cause)


class ProcessingInterrupted(ProcessingError):
    """The job was cancelled mid-stage, e.g. at service shutdown."""

    error_kind = "processing_interrupted"
    message_prefix = "Processing interrupted"


class MediaToolError(Exception):
    """
    External media tool (ffmpeg/ffprobe) failure.

    Attributes:
        command: Tool name that failed
        message: Error description
        returncode: Process exit code (None if it never ran)
        stderr: Tail of the tool's stderr
    """

    def __init__(
        self,
        command: str,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.command = command
        self.message = message
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{command}: {message}")
