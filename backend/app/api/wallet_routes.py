"""
Wallet API Routes

GET  /api/wallet          — credit balance
POST /api/wallet/credits  — top up credits (called after a confirmed payment)
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.deps import get_wallet
from app.services.wallet_service import WalletService

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


class TopUpRequest(BaseModel):
    amount: int = Field(..., gt=0)


@router.get("")
async def get_balance(wallet: WalletService = Depends(get_wallet)):
    return {"credits": wallet.balance()}


@router.post("/credits")
async def add_credits(body: TopUpRequest, wallet: WalletService = Depends(get_wallet)):
    return {"credits": wallet.add_credits(body.amount)}
