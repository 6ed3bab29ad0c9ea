"""Error taxonomy shared by every pipeline stage.

Each error carries a machine-checkable ``kind`` plus a human message, and
optionally the name of the pipeline stage that raised it.
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional


class RAGError(Exception):
    """Base class for all errors raised by the RAG core."""

    kind = "internal"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for a transport layer."""
        return {
            "kind": self.kind,
            "message": self.message,
            "stage": self.stage,
        }

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ConfigError(RAGError):
    """Invalid or incomplete settings."""

    kind = "config"


class ValidationError(RAGError):
    """Rejected input, raised before any external call."""

    kind = "validation"


class NotFoundError(RAGError):
    """Requested chunk does not exist."""

    kind = "not_found"


class DecodeError(RAGError):
    """A stored payload cannot be turned back into a chunk."""

    kind = "decode"


class UpstreamError(RAGError):
    """Failure of an external collaborator (storage, embedding, generation)."""

    kind = "upstream"

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        if cause is not None:
            message = f"{message}: {type(cause).__name__}: {cause}"
        super().__init__(message, stage=stage)
        self.cause = cause


class GenerationError(UpstreamError):
    """The generation provider failed to produce a completion."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, stage="generation", cause=cause)


# Stages that reach an external collaborator; other stages run local code.
EXTERNAL_STAGES = frozenset({"storage", "retrieval", "generation"})


@contextmanager
def stage(name: str) -> Iterator[None]:
    """Tag errors raised inside the block with a pipeline stage.

    A RAGError without a stage gets ``name``; any other exception is wrapped,
    as an UpstreamError for external stages and a RAGError otherwise.
    """
    try:
        yield
    except RAGError as e:
        if e.stage is None:
            e.stage = name
        raise
    except Exception as e:
        if name in EXTERNAL_STAGES:
            raise UpstreamError(f"{name} failed", stage=name, cause=e) from e
        raise RAGError(f"{name} failed: {type(e).__name__}: {e}", stage=name) from e
