import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import uvicorn
from api.routers.system import routes as SystemRoutes
from api.routers.seller import routes as SellerRoutes
from api.routers.user import routes as UserRoutes
from api.routers.admin import routes as AdminRoutes
from api.routers.payments import routes as PaymentRoutes
from api.security import ActorRole, require_role


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logging.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal error, please try again"})


class FastAPIManager:
    def __init__(self):
        # version format: major.minor:month.year.day:stage (beta, stable)
        self.api = FastAPI(
            version="1.0:10.26.19:beta",
            title="ReviewFlow API",
            description=(
                "Platform for paid product-review campaigns. Sellers fund review requests and pay from a wallet "
                "or a payment gateway, reviewers go through a four-step proof workflow, admins approve requests, "
                "steps and refunds. Includes a wallet ledger with GST tax invoices and a background job queue. "
                "Protected routes require a Bearer JWT carrying the caller role."
            ),
        )
        self.api.add_exception_handler(SQLAlchemyError, database_error_handler)
        self.add_routers()

    def add_routers(self):
        self.api.include_router(
            SystemRoutes.router
        )
        self.api.include_router(
            SellerRoutes.router,
            prefix="/seller",
            dependencies=[Depends(require_role(ActorRole.SELLER))],
            tags=["Seller"]
        )
        self.api.include_router(
            UserRoutes.router,
            prefix="/user",
            dependencies=[Depends(require_role(ActorRole.USER))],
            tags=["Reviewer"]
        )
        self.api.include_router(
            AdminRoutes.router,
            prefix="/admin",
            dependencies=[Depends(require_role(ActorRole.ADMIN))],
            tags=["Admin"]
        )
        self.api.include_router(
            PaymentRoutes.router,
            prefix="/payments",
            tags=["Payments"]
        )

    def start_server(self):
        uvicorn.run(self.api, host="0.0.0.0", port=8000)

    def get_app(self) -> FastAPI:
        return self.api
