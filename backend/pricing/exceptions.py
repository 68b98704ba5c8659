"""
Pricing errors.

ValidationError blocks a save and is shown to the user. NotFoundError and
RecomputeError belong to the best-effort cascade: they are logged and
collected, never raised past the cascade. PriceFreezeError aborts the
project save it happens in.
"""
from rest_framework import status


class PricingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Pricing error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PricingError):
    """Negative price, bad quantity or missing numeric field"""
    default_message = 'Invalid pricing input'

    def __init__(self, message=None, field=None):
        self.field = field
        super().__init__(message)


class NotFoundError(PricingError):
    """A referenced component, product, project or link no longer exists"""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class RecomputeError(PricingError):
    """Recomputing a dependent entity failed during a cascade"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, entity, entity_id, reason=None):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        message = f"Could not recompute {entity} {entity_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def as_dict(self):
        return {'entity': self.entity, 'id': self.entity_id, 'error': str(self.reason or self.message)}


class PriceFreezeError(PricingError):
    """Freezing or unfreezing a project's line prices failed"""
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Could not update frozen prices for this project'
