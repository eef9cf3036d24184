"""Router that answers with and without a trailing slash instead of redirecting."""

from typing import Any, Callable

from fastapi import APIRouter
from fastapi.types import DecoratedCallable


class TrailingSlashRouter(APIRouter):
    """Registers every endpoint under both its bare path and the path with a slash.

    Only the bare path appears in the OpenAPI schema. The processor posts webhooks to a
    fixed URL and does not follow redirects, so ``/billing/webhook/`` must answer
    directly too.

    Examples:
        @router.post("/webhook") - in the schema as /webhook, answers /webhook and /webhook/

        @router.get("/accounts/{account_id}/invoices/") - in the schema without the slash,
            answers both forms
    """

    def api_route(
        self, path: str, *, include_in_schema: bool = True, **kwargs: Any
    ) -> Callable[[DecoratedCallable], DecoratedCallable]:
        """Register the slash and non-slash forms of ``path``.

        Args:
            path (str): The path for the endpoint
            include_in_schema (bool): Whether the bare path is part of the OpenAPI schema
            **kwargs: Passed through to ``APIRouter.api_route``

        Returns:
            Callable[[DecoratedCallable], DecoratedCallable]: Decorator registering both.
        """
        bare_path = path.rstrip("/")

        add_bare = super().api_route(bare_path, include_in_schema=include_in_schema, **kwargs)
        add_slashed = super().api_route(bare_path + "/", include_in_schema=False, **kwargs)

        def decorator(func: DecoratedCallable) -> DecoratedCallable:
            add_slashed(func)
            return add_bare(func)

        return decorator
