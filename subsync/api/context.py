"""Unified context for API requests.

Combines the authenticated caller, logging, and request metadata into a single
injectable dependency.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from subsync.core.exceptions import PermissionException, UnauthenticatedException
from subsync.core.logging import ContextualLogger


class ApiContext(BaseModel):
    """Unified context for API requests.

    Authentication itself happens upstream; ``account_id`` is the verified caller, or
    None when the request carried no identity.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)  # For ContextualLogger

    # Request metadata
    request_id: str

    # Authentication context
    account_id: Optional[str] = None
    auth_method: str = "gateway"

    # Contextual logger with all dimensions pre-configured
    logger: ContextualLogger

    @property
    def is_authenticated(self) -> bool:
        """Whether a verified caller is attached."""
        return bool(self.account_id)

    def ensure_may_act_on(self, account_id: str) -> None:
        """Check that the caller may operate on the given account.

        Raises:
            UnauthenticatedException: If there is no verified caller
            PermissionException: If the caller is acting on another account
        """
        if not self.is_authenticated:
            raise UnauthenticatedException()
        if self.account_id != account_id:
            raise PermissionException(
                f"Caller {self.account_id} may not act on account {account_id}"
            )

    def __str__(self) -> str:
        """String representation for logging."""
        return f"ApiContext(request_id={self.request_id[:8]}..., account={self.account_id})"
