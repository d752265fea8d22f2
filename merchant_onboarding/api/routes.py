"""
API routes for merchant onboarding.

Categorized operations answer with the HTTP status of their response status.
Operations that raise (notification reads, payment-time fee lookup) are
mapped to HTTP errors here.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from merchant_onboarding.core.errors import (
    DEFAULT_ERROR_REGISTRY,
    NotificationNotFoundError,
    OnboardingError,
    OnboardingResponse,
)
from merchant_onboarding.core.models import FeeSet, Notification, SystemFees
from merchant_onboarding.core.onboarding import OnboardingService
from merchant_onboarding.core.payout_costs import PayoutCostService
from merchant_onboarding.core.system_fees import AddSystemFeesRequest, SystemFeeService
from merchant_onboarding.monitoring.health import HealthCheck

from .dependencies import (
    get_health_check,
    get_onboarding_service,
    get_payout_cost_service,
    get_system_fee_service,
)
from .schemas import (
    AddSystemFeesRequestSchema,
    ChangeMerchantDataRequest,
    ChangeMerchantStatusRequest,
    CreateNotificationRequest,
    HealthCheckResponse,
    OnboardingResponseSchema,
    SetMerchantTariffRatesRequest,
    SetPayoutCostSystemRequest,
)

logger = structlog.get_logger(__name__)

# Create routers
merchant_router = APIRouter(prefix="/merchants", tags=["merchants"])
tariff_router = APIRouter(prefix="/tariff_rates", tags=["tariffs"])
system_fees_router = APIRouter(prefix="/system_fees", tags=["system fees"])
payout_cost_router = APIRouter(prefix="/payout_cost_system", tags=["payout cost"])
monitoring_router = APIRouter(tags=["monitoring"])


def to_json_response(response: OnboardingResponse) -> JSONResponse:
    return JSONResponse(
        status_code=int(response.status),
        content=response.model_dump(mode="json"),
    )


def raise_http_error(error: OnboardingError) -> None:
    message = error.to_message(DEFAULT_ERROR_REGISTRY)
    raise HTTPException(status_code=int(error.status), detail=message.model_dump())


@merchant_router.patch(
    "/{merchant_id}/status",
    response_model=OnboardingResponseSchema,
    summary="Change merchant status",
)
async def change_merchant_status(
    merchant_id: str,
    request: ChangeMerchantStatusRequest,
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    logger.info("api_change_merchant_status_request", merchant_id=merchant_id, status=request.status)
    response = await service.change_merchant_status(merchant_id, request.status, request.message)
    return to_json_response(response)


@merchant_router.patch(
    "/{merchant_id}/data",
    response_model=OnboardingResponseSchema,
    summary="Change merchant agreement data",
)
async def change_merchant_data(
    merchant_id: str,
    request: ChangeMerchantDataRequest,
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    response = await service.change_merchant_data(
        merchant_id,
        request.has_psp_signature,
        request.has_merchant_signature,
        request.agreement_type,
    )
    return to_json_response(response)


@merchant_router.post(
    "/{merchant_id}/tariffs",
    response_model=OnboardingResponseSchema,
    summary="Set merchant tariff rates",
    description="Materialize merchant costs from the matching tariff template (once per merchant)",
)
async def set_merchant_tariff_rates(
    merchant_id: str,
    request: SetMerchantTariffRatesRequest,
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    logger.info(
        "api_set_merchant_tariff_rates_request",
        merchant_id=merchant_id,
        region=request.region,
        payout_currency=request.payout_currency,
    )
    response = await service.set_merchant_tariff_rates(
        merchant_id,
        request.region,
        request.payout_currency,
        request.amount_from,
        request.amount_to,
    )
    return to_json_response(response)


@merchant_router.get(
    "/{merchant_id}/costs/payment_channel",
    response_model=OnboardingResponseSchema,
    summary="List merchant payment channel costs",
)
async def list_merchant_payment_channel_costs(
    merchant_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    return to_json_response(await service.list_merchant_payment_channel_costs(merchant_id))


@merchant_router.get(
    "/{merchant_id}/costs/money_back",
    response_model=OnboardingResponseSchema,
    summary="List merchant money back costs",
)
async def list_merchant_money_back_costs(
    merchant_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    return to_json_response(await service.list_merchant_money_back_costs(merchant_id))


@merchant_router.post(
    "/{merchant_id}/notifications",
    response_model=OnboardingResponseSchema,
    summary="Create merchant notification",
)
async def create_notification(
    merchant_id: str,
    request: CreateNotificationRequest,
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    response = await service.create_notification(
        merchant_id, request.title, request.message, request.user_id
    )
    return to_json_response(response)


@merchant_router.get(
    "/{merchant_id}/notifications",
    response_model=OnboardingResponseSchema,
    summary="List merchant notifications",
)
async def list_notifications(
    merchant_id: str,
    user_id: Optional[str] = None,
    is_system: Optional[bool] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    response = await service.list_notifications(merchant_id, user_id, is_system, limit, offset)
    return to_json_response(response)


@merchant_router.get(
    "/{merchant_id}/notifications/{notification_id}",
    response_model=Notification,
    summary="Get merchant notification",
)
async def get_notification(
    merchant_id: str,
    notification_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
) -> Notification:
    try:
        return await service.get_notification(merchant_id, notification_id)
    except NotificationNotFoundError as e:
        raise_http_error(e)


@merchant_router.put(
    "/{merchant_id}/notifications/{notification_id}/read",
    response_model=Notification,
    summary="Mark notification as read",
)
async def mark_notification_as_read(
    merchant_id: str,
    notification_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
) -> Notification:
    try:
        return await service.mark_notification_as_read(merchant_id, notification_id)
    except NotificationNotFoundError as e:
        raise_http_error(e)


@tariff_router.get(
    "",
    response_model=OnboardingResponseSchema,
    summary="Get tariff rates",
    description="Look up tariff templates by region, payout currency and amount range",
)
async def get_merchant_tariff_rates(
    region: str,
    payout_currency: Optional[str] = None,
    amount_from: Optional[Decimal] = None,
    amount_to: Optional[Decimal] = None,
    service: OnboardingService = Depends(get_onboarding_service),
) -> JSONResponse:
    response = await service.get_merchant_tariff_rates(region, payout_currency, amount_from, amount_to)
    return to_json_response(response)


@system_fees_router.post(
    "",
    response_model=OnboardingResponseSchema,
    summary="Add system fees",
)
async def add_system_fees(
    request: AddSystemFeesRequestSchema,
    service: SystemFeeService = Depends(get_system_fee_service),
) -> JSONResponse:
    response = await service.add_system_fees(AddSystemFeesRequest(**request.model_dump()))
    return to_json_response(response)


@system_fees_router.get(
    "",
    response_model=List[SystemFees],
    summary="List active system fees",
)
async def list_active_system_fees(
    service: SystemFeeService = Depends(get_system_fee_service),
) -> List[SystemFees]:
    return await service.list_active()


@system_fees_router.get(
    "/payment",
    response_model=FeeSet,
    summary="Get system fees for a payment",
)
async def get_system_fees_for_payment(
    method_id: str,
    currency: str,
    amount: Decimal,
    region: str = "",
    card_brand: str = "",
    service: SystemFeeService = Depends(get_system_fee_service),
) -> FeeSet:
    try:
        return await service.get_for_payment(method_id, region, card_brand, currency, amount)
    except OnboardingError as e:
        raise_http_error(e)


@payout_cost_router.put(
    "",
    response_model=OnboardingResponseSchema,
    summary="Set payout cost system",
)
async def set_payout_cost_system(
    request: SetPayoutCostSystemRequest,
    service: PayoutCostService = Depends(get_payout_cost_service),
) -> JSONResponse:
    response = await service.set_payout_cost_system(request.fix_amount, request.fix_amount_currency)
    return to_json_response(response)


@payout_cost_router.get(
    "",
    response_model=OnboardingResponseSchema,
    summary="Get payout cost system",
)
async def get_payout_cost_system(
    service: PayoutCostService = Depends(get_payout_cost_service),
) -> JSONResponse:
    return to_json_response(await service.get_payout_cost_system())


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await health_check.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
