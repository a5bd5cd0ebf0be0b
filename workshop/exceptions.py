"""
Custom Exception Hierarchy for the Workshop Module

Exception Hierarchy:
    WorkshopError (base)
    ├── CollaboratorError
    │   ├── AnalysisBackendError
    │   │   ├── AnalysisTimeoutError
    │   │   └── AnalysisPayloadError
    │   └── ReflectionPromptError
    ├── AgentError
    │   ├── AgentExecutionError
    │   ├── AgentTimeoutError
    │   └── AgentOutputError
    ├── PersistenceError
    │   └── VersionPersistenceError
    ├── StateError
    │   ├── IssueNotFoundError
    │   ├── ActivityNotAnalyzedError
    │   └── IssueStateTransitionError
    ├── PromptError
    │   └── PromptTemplateError
    └── ConfigurationError
"""

from typing import Optional


class WorkshopError(Exception):
    """Base exception for all workshop errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Collaborator Errors

class CollaboratorError(WorkshopError):
    """Base exception for failures of external collaborators."""
    pass


class AnalysisBackendError(CollaboratorError):
    """Raised when the rubric analysis backend fails or rejects a request."""

    def __init__(self, message: str, code: str = "ANALYSIS_FAILED", status_code: Optional[int] = None):
        super().__init__(message, {"code": code, "status_code": status_code})
        self.code = code
        self.status_code = status_code


class AnalysisTimeoutError(AnalysisBackendError):
    """Raised when the analysis backend does not answer in time."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Analysis timed out after {timeout_seconds}s", code="TIMEOUT")
        self.timeout_seconds = timeout_seconds


class AnalysisPayloadError(AnalysisBackendError):
    """Raised when an analysis payload cannot be interpreted."""

    def __init__(self, reason: str):
        super().__init__(f"Malformed analysis payload: {reason}", code="INVALID_PAYLOAD")
        self.reason = reason


class ReflectionPromptError(CollaboratorError):
    """Raised when reflection prompts cannot be produced for an issue."""

    def __init__(self, issue_id: str, reason: str, attempts: Optional[int] = None):
        message = f"Reflection prompt generation failed for '{issue_id}': {reason}"
        if attempts:
            message += f" (after {attempts} attempts)"
        super().__init__(message)
        self.issue_id = issue_id
        self.reason = reason
        self.attempts = attempts


# Agent Errors

class AgentError(WorkshopError):
    """Base exception for agent-related errors."""

    def __init__(self, agent_name: str, message: str, details: Optional[dict] = None):
        formatted_message = f"[{agent_name}] {message}"
        super().__init__(formatted_message, details)
        self.agent_name = agent_name


class AgentExecutionError(AgentError):
    """Raised when agent execution fails."""
    pass


class AgentTimeoutError(AgentError):
    """Raised when agent execution times out."""

    def __init__(self, agent_name: str, timeout_seconds: int):
        super().__init__(agent_name, f"Execution timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class AgentOutputError(AgentError):
    """Raised when agent output is invalid or malformed."""

    def __init__(self, agent_name: str, expected_schema: Optional[str] = None):
        message = "Invalid or malformed output"
        if expected_schema:
            message += f" (expected schema: {expected_schema})"
        super().__init__(agent_name, message)
        self.expected_schema = expected_schema


# Persistence Errors

class PersistenceError(WorkshopError):
    """Base exception for storage failures."""
    pass


class VersionPersistenceError(PersistenceError):
    """Raised when an essay version cannot be written."""

    def __init__(self, activity_id: str, operation: str, reason: str):
        super().__init__(f"Version {operation} failed for activity '{activity_id}': {reason}")
        self.activity_id = activity_id
        self.operation = operation
        self.reason = reason


# State Errors

class StateError(WorkshopError):
    """Base exception for workshop state errors."""
    pass


class IssueNotFoundError(StateError):
    """Raised when a teaching issue id is unknown for an activity."""

    def __init__(self, activity_id: str, issue_id: str):
        super().__init__(f"Teaching issue '{issue_id}' not found for activity '{activity_id}'")
        self.activity_id = activity_id
        self.issue_id = issue_id


class ActivityNotAnalyzedError(StateError):
    """Raised when an operation needs an analysis the activity does not have yet."""

    def __init__(self, activity_id: str):
        super().__init__(f"Activity '{activity_id}' has no successful analysis yet")
        self.activity_id = activity_id


class IssueStateTransitionError(StateError):
    """Raised when a teaching issue status transition is invalid."""

    def __init__(self, from_state: str, to_state: str, reason: str):
        message = f"Invalid state transition from '{from_state}' to '{to_state}': {reason}"
        super().__init__(message)
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason


# Prompt Errors

class PromptError(WorkshopError):
    """Base exception for prompt-related errors."""
    pass


class PromptTemplateError(PromptError):
    """Raised when prompt template rendering fails."""

    def __init__(self, template_name: str, missing_vars: list[str]):
        message = f"Prompt template '{template_name}' missing variables: {', '.join(missing_vars)}"
        super().__init__(message)
        self.template_name = template_name
        self.missing_vars = missing_vars


# Configuration Errors

class ConfigurationError(WorkshopError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_key: str, reason: str):
        message = f"Configuration error for '{config_key}': {reason}"
        super().__init__(message)
        self.config_key = config_key
        self.reason = reason
