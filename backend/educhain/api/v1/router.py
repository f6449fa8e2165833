"""API v1 router aggregation"""
from fastapi import APIRouter

from educhain.api.v1 import institution, wallets, settlement, tasks, ledger

api_router = APIRouter()

# Flat function-style endpoints: /create-accounts-and-emit, /send-tokens, ...
api_router.include_router(institution.router, tags=["Institution"])
api_router.include_router(wallets.router, tags=["Wallets"])
api_router.include_router(settlement.router, tags=["Settlement"])
api_router.include_router(ledger.router, tags=["Ledger"])

api_router.include_router(tasks.router, prefix="/student-tasks", tags=["Student Tasks"])
