"""Wallets API router."""
from fastapi import APIRouter, Depends, HTTPException, Path
from typing import List
from opentelemetry import trace

from auth import Caller, require_permission
from dependencies import get_ledger_service, get_user_wallet_service
from errors import NotFound, ShopError
from schemas import (
    BalanceResponse,
    MessageResponse,
    TransferRequest,
    WalletAmountRequest,
    WalletCreate,
    WalletResponse,
)
from services.ledger_service import LedgerService
from services.user_wallet_service import UserWalletService

router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.get("", response_model=List[WalletResponse])
def list_wallets(
    caller: Caller = Depends(require_permission("wallet_read")),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Get the caller's wallets."""
    return ledger.list_wallets(caller.user_id)


@router.post("", response_model=WalletResponse, status_code=201)
def create_wallet(
    request: WalletCreate,
    caller: Caller = Depends(require_permission("wallet_write")),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Open a wallet in a new currency."""
    try:
        return ledger.create_wallet(caller.user_id, request.currency, request.initial_balance)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post("/transfer", response_model=MessageResponse)
def transfer(
    request: TransferRequest,
    caller: Caller = Depends(require_permission("wallet_write")),
    user_wallets: UserWalletService = Depends(get_user_wallet_service)
):
    """Send funds from the caller's wallet in the given currency to another wallet."""
    span = trace.get_current_span()
    span.set_attribute("transfer.to_wallet_id", request.to_wallet_id)
    span.set_attribute("transfer.amount_minor", request.amount_minor)
    try:
        user_wallets.transfer_to_wallet(
            caller.user_id, request.to_wallet_id, request.currency, request.amount_minor
        )
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    return {"message": "Transfer completed"}


@router.get("/currency/{currency}", response_model=WalletResponse)
def get_wallet_by_currency(
    currency: str = Path(..., description="ISO 4217 currency code"),
    caller: Caller = Depends(require_permission("wallet_read")),
    ledger: LedgerService = Depends(get_ledger_service)
):
    try:
        wallet = ledger.find_wallet(caller.user_id, currency)
        if wallet is None:
            raise NotFound(f"You don't have a wallet with currency {currency.upper()}", currency=currency)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    return wallet


@router.get("/currency/{currency}/balance", response_model=BalanceResponse)
def get_balance(
    currency: str = Path(..., description="ISO 4217 currency code"),
    caller: Caller = Depends(require_permission("wallet_read")),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Balance in minor units; 0 when the caller has no wallet in that currency."""
    try:
        balance = ledger.get_balance(caller.user_id, currency)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    return {"currency": currency.upper(), "balance_minor": balance}


@router.post("/{wallet_id}/increase", response_model=WalletResponse)
def increase_wallet(
    request: WalletAmountRequest,
    wallet_id: str = Path(..., description="Wallet ID"),
    caller: Caller = Depends(require_permission("wallet_write")),
    user_wallets: UserWalletService = Depends(get_user_wallet_service)
):
    """Top up one of the caller's wallets."""
    try:
        return user_wallets.increase_own_wallet(caller.user_id, wallet_id, request.amount_minor)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.delete("/{wallet_id}", status_code=204)
def delete_wallet(
    wallet_id: str = Path(..., description="Wallet ID"),
    caller: Caller = Depends(require_permission("wallet_write")),
    user_wallets: UserWalletService = Depends(get_user_wallet_service)
):
    """Delete one of the caller's wallets; it must be empty."""
    try:
        user_wallets.delete_own_wallet(caller.user_id, wallet_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
