"""Wallet endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Query

from parkwallet.api.deps import Identity, get_directory, get_identity, get_ledger, require_admin
from parkwallet.config import settings
from parkwallet.errors import NotFound
from parkwallet.schemas.common import Envelope
from parkwallet.schemas.wallet import (
    AdminTopUpRequest,
    TopUpRequest,
    WalletResponse,
    WalletTransactionResponse,
)
from parkwallet.store.directory import Directory
from parkwallet.store.ledger import Ledger

router = APIRouter()


async def _wallet_of(ledger: Ledger, subject_id: str):
    wallet = await ledger.get_for_subject(subject_id)
    if wallet is None:
        raise NotFound("Wallet not found")
    return wallet


@router.get("/balance", response_model=Envelope[WalletResponse])
async def get_wallet_balance(
    identity: Identity = Depends(get_identity),
    ledger: Ledger = Depends(get_ledger),
):
    """Get the caller's wallet balance."""
    wallet = await _wallet_of(ledger, identity.subject_id)
    return Envelope(data=WalletResponse.model_validate(wallet))


@router.get("/transactions", response_model=Envelope[List[WalletTransactionResponse]])
async def list_wallet_transactions(
    limit: int = Query(50, ge=1, le=500),
    identity: Identity = Depends(get_identity),
    ledger: Ledger = Depends(get_ledger),
):
    """List the caller's most recent balance changes."""
    wallet = await _wallet_of(ledger, identity.subject_id)
    transactions = await ledger.list_transactions(wallet.wallet_id, limit=limit)
    return Envelope(data=[WalletTransactionResponse.model_validate(t) for t in transactions])


@router.post("/topup", response_model=Envelope[WalletResponse])
async def top_up(
    request: TopUpRequest,
    identity: Identity = Depends(get_identity),
    ledger: Ledger = Depends(get_ledger),
):
    """Top up the caller's wallet."""
    wallet = await _wallet_of(ledger, identity.subject_id)
    updated = await ledger.top_up(wallet.wallet_id, request.amount)
    return Envelope(
        data=WalletResponse.model_validate(updated),
        message=f"Successfully topped up {settings.CURRENCY_LABEL} {request.amount}",
    )


@router.post("/admin/topup", response_model=Envelope[WalletResponse])
async def admin_top_up(
    request: AdminTopUpRequest,
    admin: Identity = Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
    directory: Directory = Depends(get_directory),
):
    """Top up any user's wallet, creating the wallet if it does not exist yet."""
    await directory.resolve_by_id(request.subject_id)

    wallet = await ledger.get_for_subject(request.subject_id)
    if wallet is None:
        created = await ledger.create(request.subject_id, initial_balance=request.amount)
        return Envelope(
            data=WalletResponse.model_validate(created),
            message=(
                f"Successfully created wallet and topped up "
                f"{settings.CURRENCY_LABEL} {request.amount}"
            ),
        )

    updated = await ledger.top_up(wallet.wallet_id, request.amount)
    return Envelope(
        data=WalletResponse.model_validate(updated),
        message=(
            f"Successfully topped up {settings.CURRENCY_LABEL} {request.amount} "
            f"for user {request.subject_id}"
        ),
    )
