from fastapi import APIRouter

from app.api.v1 import approvals, auth, reimbursements, users

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(reimbursements.router, prefix="/reimbursements", tags=["reimbursements"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
