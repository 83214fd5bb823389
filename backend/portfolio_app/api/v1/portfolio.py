"""Portfolio management API endpoints"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from portfolio_app.core.accounting import PortfolioAccountingService
from portfolio_app.schemas.portfolio import (
    DividendForecast,
    DividendView,
    HoldingView,
    NextDividend,
    PortfolioPosition,
    PortfolioSnapshot,
    RebuildResult,
    TodaysChange,
    TransactionCreate,
    TransactionView,
)

router = APIRouter()


def get_accounting_service(request: Request) -> PortfolioAccountingService:
    """Dependency for the service created at startup"""
    return request.app.state.accounting


@router.get("/", response_model=PortfolioSnapshot)
async def get_snapshot(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """All dashboard panels of the active portfolio"""
    return await service.snapshot()


@router.get("/holdings", response_model=List[HoldingView])
async def list_holdings(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """Current holdings"""
    return await service.holdings()


@router.post("/holdings/rebuild", response_model=RebuildResult)
async def rebuild_holdings(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """Recompute every holding by replaying the ledger"""
    return await service.rebuild_holdings()


@router.get("/positions", response_model=List[PortfolioPosition])
async def list_positions(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """Holdings valued at their latest price"""
    return await service.positions()


@router.get("/movers/{kind}", response_model=List[PortfolioPosition])
async def list_top_movers(
    kind: Literal["gainers", "losers"],
    service: PortfolioAccountingService = Depends(get_accounting_service)
):
    """Top gainers or losers by change percentage"""
    return await service.top_movers(kind)


# Transaction CRUD
@router.get("/transactions", response_model=List[TransactionView])
async def get_transactions(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    service: PortfolioAccountingService = Depends(get_accounting_service)
):
    """Get transaction history, most recent first"""
    return await service.transactions(limit)


@router.post("/transactions", status_code=201)
async def create_transaction(
    transaction: TransactionCreate,
    service: PortfolioAccountingService = Depends(get_accounting_service)
):
    """Record a buy, sell or dividend"""
    created = await service.add_transaction(transaction)
    return created


@router.put("/transactions/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    transaction: TransactionCreate,
    service: PortfolioAccountingService = Depends(get_accounting_service)
):
    """Edit a transaction; the holding is recomputed"""
    return await service.update_transaction(transaction_id, transaction)


@router.delete("/transactions/{transaction_id}")
async def delete_transaction(
    transaction_id: int,
    service: PortfolioAccountingService = Depends(get_accounting_service)
):
    """Delete a transaction and retract it from the holding"""
    await service.delete_transaction(transaction_id)
    return {"message": "Transaction deleted", "errors": service.errors}


# Analytics
@router.get("/todays-change", response_model=TodaysChange)
async def get_todays_change(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """Value change since the previous close"""
    return await service.todays_change()


@router.get("/next-dividend", response_model=Optional[NextDividend])
async def get_next_dividend(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """Earliest upcoming dividend of a held stock, or null"""
    return await service.next_dividend()


@router.get("/dividends", response_model=List[DividendView])
async def list_dividends(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """Upcoming dividends of held stocks with their current status"""
    return await service.dividends()


@router.get("/dividends/forecast", response_model=DividendForecast)
async def get_dividend_forecast(service: PortfolioAccountingService = Depends(get_accounting_service)):
    """Dividend income over the next twelve months"""
    return await service.dividend_forecast()
