"""Custom exception hierarchy for mnemos.

All application-specific exceptions inherit from MnemosError,
which carries an error code that front-ends can map to error frames.
"""

from __future__ import annotations


class MnemosError(Exception):
    """Base exception for all mnemos errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class RetrievalError(MnemosError):
    """Errors while gathering context (persistence failures during search)."""

    def __init__(self, message: str, *, code: str = "RETRIEVAL_ERROR") -> None:
        super().__init__(message, code=code)


class EmbeddingFailedError(RetrievalError):
    """The query embedding could not be generated. Fatal for the retrieval call."""

    def __init__(self, message: str = "Embedding generation failed") -> None:
        super().__init__(message, code="EMBEDDING_FAILED")


class VectorIndexError(MnemosError):
    """Errors in the vector index layer."""

    def __init__(self, message: str, *, code: str = "VECTOR_INDEX_ERROR") -> None:
        super().__init__(message, code=code)


class VectorCountMismatchError(VectorIndexError):
    """Vectors and keys passed to add() differ in length."""

    def __init__(self, vectors: int, keys: int) -> None:
        super().__init__(
            f"Got {vectors} vectors but {keys} keys",
            code="VECTOR_COUNT_MISMATCH",
        )


class VectorDimensionMismatchError(VectorIndexError):
    """A vector does not match the index dimensionality."""

    def __init__(self, expected: int, got: int) -> None:
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {got}",
            code="VECTOR_DIMENSION_MISMATCH",
        )
        self.expected = expected
        self.got = got


class AgentError(MnemosError):
    """Errors in the Agent runtime."""

    def __init__(self, message: str, *, code: str = "AGENT_ERROR") -> None:
        super().__init__(message, code=code)


class LLMError(AgentError):
    """Errors from LLM API calls (timeouts, rate limits, failures)."""

    def __init__(self, message: str, *, code: str = "LLM_ERROR") -> None:
        super().__init__(message, code=code)


class ToolError(AgentError):
    """Errors during tool execution."""

    def __init__(self, message: str, *, code: str = "TOOL_ERROR") -> None:
        super().__init__(message, code=code)


class ToolNotFoundError(ToolError):
    """Requested tool is not in the session's capability set.

    Raised rather than converted into a tool message: an unknown tool
    means the caller or configuration is wrong.
    """

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' not found", code="TOOL_NOT_FOUND")
        self.tool_name = tool_name


class SessionError(MnemosError):
    """Errors in Session management."""

    def __init__(self, message: str, *, code: str = "SESSION_ERROR") -> None:
        super().__init__(message, code=code)


class SessionNotFoundError(SessionError):
    """Session id is unknown to both the registry and the session store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", code="SESSION_NOT_FOUND")
        self.session_id = session_id
