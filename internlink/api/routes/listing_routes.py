"""
Listing Routes - one-shot reads of the same projections the streams push.

GET /students/{student_id}/applications - A student's applications + tally
GET /students/{student_id}/dashboard - Student dashboard numbers
GET /postings/{posting_id}/applications - Applications for one posting + tally
GET /companies/{company_name}/applications - All of a company's applications + tally
GET /companies/{company_name}/dashboard - Company dashboard numbers

`status` filters the list only; the tally always counts everything.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from internlink.api.deps import Services, get_services
from internlink.api.responses import ERROR_RESPONSES, dashboard_response, list_response
from internlink.core.auth import get_current_actor
from internlink.schemas.schemas import (
    Actor,
    ApplicationListResponse,
    DashboardResponse,
    SubscriptionScope,
)
from internlink.services.projection import DashboardSummary, parse_status_filter, project

router = APIRouter(tags=["Application Lists"], responses=ERROR_RESPONSES)

STATUS_QUERY = Query(None, description="pending | reviewed | shortlisted | accepted | rejected | all")


@router.get("/students/{student_id}/applications", response_model=ApplicationListResponse)
async def list_student_applications(
    student_id: str,
    status: Optional[str] = STATUS_QUERY,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    status_filter = parse_status_filter(status)
    await services.engine.authorize_scope(actor, SubscriptionScope.student, student_id)
    applications = await services.store.query_by_student(student_id)
    return list_response(project(applications, status_filter))


@router.get("/students/{student_id}/dashboard", response_model=DashboardResponse)
async def student_dashboard(
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    await services.engine.authorize_scope(actor, SubscriptionScope.student, student_id)
    applications = await services.store.query_by_student(student_id)
    return dashboard_response(DashboardSummary.from_applications(applications))


@router.get("/postings/{posting_id}/applications", response_model=ApplicationListResponse)
async def list_posting_applications(
    posting_id: str,
    status: Optional[str] = STATUS_QUERY,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    status_filter = parse_status_filter(status)
    await services.engine.authorize_scope(actor, SubscriptionScope.posting, posting_id)
    applications = await services.store.query_by_posting(posting_id)
    return list_response(project(applications, status_filter))


@router.get("/companies/{company_name}/applications", response_model=ApplicationListResponse)
async def list_company_applications(
    company_name: str,
    status: Optional[str] = STATUS_QUERY,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    status_filter = parse_status_filter(status)
    await services.engine.authorize_scope(actor, SubscriptionScope.company, company_name)
    applications = await services.store.query_by_company(company_name)
    return list_response(project(applications, status_filter))


@router.get("/companies/{company_name}/dashboard", response_model=DashboardResponse)
async def company_dashboard(
    company_name: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    await services.engine.authorize_scope(actor, SubscriptionScope.company, company_name)
    applications = await services.store.query_by_company(company_name)
    return dashboard_response(DashboardSummary.from_applications(applications))
