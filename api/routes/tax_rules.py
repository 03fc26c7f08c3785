"""
税率规则 API（管理员维护，试算对所有登录用户开放）
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import (
    PageParams,
    get_current_principal,
    get_page_params,
    get_tax_rule_service,
    require_admin,
)
from application.dtos.pricing import (
    TaxCalculateRequest,
    TaxCalculateResponse,
    TaxRuleCreate,
    TaxRuleOut,
    TaxRuleUpdate,
)
from application.services.pricing_service import TaxRuleService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal

router = APIRouter(prefix="/tax-rules", tags=["Tax Rules"])


@router.post("/calculate", summary="税费试算", response_model=ApiResponse[TaxCalculateResponse])
async def calculate_tax(
    body: TaxCalculateRequest,
    _principal: Principal = Depends(get_current_principal),
    service: TaxRuleService = Depends(get_tax_rule_service),
):
    result = await service.calculate(body)
    return success_response(data=result)


@router.post("", summary="创建税率规则", status_code=status.HTTP_201_CREATED, response_model=ApiResponse[TaxRuleOut])
async def create_tax_rule(
    body: TaxRuleCreate,
    principal: Principal = Depends(require_admin),
    service: TaxRuleService = Depends(get_tax_rule_service),
):
    rule = await service.create(principal, body)
    return success_response(data=rule, message="Tax rule created")


@router.get("", summary="税率规则列表", response_model=ApiResponse[PaginatedData[TaxRuleOut]])
async def list_tax_rules(
    country: Optional[str] = Query(None, min_length=2, max_length=2),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    pagination: PageParams = Depends(get_page_params),
    principal: Principal = Depends(require_admin),
    service: TaxRuleService = Depends(get_tax_rule_service),
):
    items, total = await service.list(
        principal,
        page=pagination.page,
        size=pagination.size,
        country=country,
        is_active=is_active,
    )
    return paginated_response(items=items, total=total, page=pagination.page, size=pagination.size)


@router.get("/{rule_id}", summary="税率规则详情", response_model=ApiResponse[TaxRuleOut])
async def get_tax_rule(
    rule_id: str,
    principal: Principal = Depends(require_admin),
    service: TaxRuleService = Depends(get_tax_rule_service),
):
    rule = await service.get(principal, rule_id)
    return success_response(data=rule)


@router.patch("/{rule_id}", summary="更新税率规则", response_model=ApiResponse[TaxRuleOut])
async def update_tax_rule(
    rule_id: str,
    body: TaxRuleUpdate,
    principal: Principal = Depends(require_admin),
    service: TaxRuleService = Depends(get_tax_rule_service),
):
    rule = await service.update(principal, rule_id, body)
    return success_response(data=rule, message="Tax rule updated")


@router.delete("/{rule_id}", summary="删除税率规则", response_model=ApiResponse[None])
async def delete_tax_rule(
    rule_id: str,
    principal: Principal = Depends(require_admin),
    service: TaxRuleService = Depends(get_tax_rule_service),
):
    await service.delete(principal, rule_id)
    return success_response(message="Tax rule deleted")
