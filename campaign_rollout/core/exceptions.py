# campaign_rollout/core/exceptions.py
"""
Exception hierarchy for the campaign rollout engine.

Validation and not-found errors are raised synchronously and never retried.
Transient errors are raised inside queue tasks so the task runner retries
them with backoff.
"""

from typing import Optional


class CampaignEngineError(Exception):
    """Base exception for all rollout engine errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "CAMPAIGN_ENGINE_ERROR",
        details: Optional[dict] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ===========================================
# Validation Exceptions
# ===========================================


class CampaignValidationError(CampaignEngineError):
    """Request rejected before any state was changed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, error_code="VALIDATION_ERROR", details=details)


class InvalidTransitionError(CampaignValidationError):
    """Operation is not legal in the campaign's current status."""

    def __init__(self, campaign_id: str, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} campaign in {current_status} status",
            details={
                "campaign_id": campaign_id,
                "status": current_status,
                "action": action,
            },
        )
        self.error_code = "INVALID_TRANSITION"


class DisallowedFieldEditError(CampaignValidationError):
    """Field edit attempted on a campaign whose status forbids it."""

    def __init__(self, fields: list[str], current_status: str):
        super().__init__(
            message=(
                f"Cannot update fields {', '.join(fields)} "
                f"on {current_status} campaign"
            ),
            details={"fields": fields, "status": current_status},
        )
        self.fields = fields
        self.error_code = "FIELD_EDIT_NOT_ALLOWED"


# ===========================================
# Not Found Exceptions
# ===========================================


class NotFoundError(CampaignEngineError):
    """Entity does not exist or belongs to another organization."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} with ID {entity_id} not found",
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


# ===========================================
# Execution Exceptions
# ===========================================


class TransientExecutionError(CampaignEngineError):
    """A store or broker failure that is worth retrying."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, error_code="TRANSIENT_FAILURE", details=details)
