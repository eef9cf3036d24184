"""CRUD operations for cancellation feedback."""

from subsync import schemas
from subsync.crud._base import CRUDBase
from subsync.models import CancellationFeedback


class CRUDCancellationFeedback(
    CRUDBase[
        CancellationFeedback,
        schemas.CancellationFeedbackCreate,
        schemas.CancellationFeedbackCreate,
    ]
):
    """CRUD operations for cancellation feedback."""

    pass


cancellation_feedback = CRUDCancellationFeedback(CancellationFeedback)
