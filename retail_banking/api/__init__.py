"""
Retail Banking API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .accounts import router as accounts_router
from .transactions import router as transactions_router
from .bill_payments import router as bill_payments_router
from .exchange import router as exchange_router
from .scheduled_payments import router as scheduled_payments_router
from .beneficiaries import router as beneficiaries_router
from .cards import router as cards_router
from .loans import router as loans_router
from .notifications import router as notifications_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Retail Banking API",
        description="Accounts, ledger, cards, bill payments, currency exchange, scheduled payments and loans",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(bill_payments_router, prefix="/bill-payments", tags=["Bill Payments"])
    app.include_router(exchange_router, prefix="/exchange", tags=["Currency Exchange"])
    app.include_router(scheduled_payments_router, prefix="/scheduled-payments", tags=["Scheduled Payments"])
    app.include_router(beneficiaries_router, prefix="/beneficiaries", tags=["Beneficiaries"])
    app.include_router(cards_router, prefix="/cards", tags=["Cards"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "retail_banking_api",
            "version": __version__
        }

    return app


app = create_app()
