from fastapi import APIRouter

from leave_ledger.api.assignments import (
    employee_assignments_router,
    org_assignments_router,
    policy_assignments_router,
)
from leave_ledger.api.balances import adjustment_router, employee_balance_router, employee_ledger_router
from leave_ledger.api.blackouts import blackouts_router
from leave_ledger.api.documents import documents_router
from leave_ledger.api.holidays import holidays_router
from leave_ledger.api.maintenance import maintenance_router, mappings_router
from leave_ledger.api.policies import leave_types_router
from leave_ledger.api.policies import router as policies_router
from leave_ledger.api.requests import requests_router
from leave_ledger.api.workflows import workflows_router

api_router = APIRouter()
api_router.include_router(leave_types_router)
api_router.include_router(policies_router)
api_router.include_router(policy_assignments_router)
api_router.include_router(org_assignments_router)
api_router.include_router(employee_assignments_router)
api_router.include_router(employee_balance_router)
api_router.include_router(employee_ledger_router)
api_router.include_router(adjustment_router)
api_router.include_router(maintenance_router)
api_router.include_router(mappings_router)
api_router.include_router(requests_router)
api_router.include_router(workflows_router)
api_router.include_router(blackouts_router)
api_router.include_router(holidays_router)
api_router.include_router(documents_router)
