"""
优惠券 API（仅管理员）
"""
from fastapi import APIRouter, Depends, status

from api.dependencies import PageParams, get_coupon_service, get_page_params, require_admin
from application.dtos.pricing import CouponCreate, CouponOut, CouponUpdate
from application.services.pricing_service import CouponService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("", summary="创建优惠券", status_code=status.HTTP_201_CREATED, response_model=ApiResponse[CouponOut])
async def create_coupon(
    body: CouponCreate,
    principal: Principal = Depends(require_admin),
    service: CouponService = Depends(get_coupon_service),
):
    """优惠码唯一，重复返回 409"""
    coupon = await service.create(principal, body)
    return success_response(data=coupon, message="Coupon created")


@router.get("", summary="优惠券列表", response_model=ApiResponse[PaginatedData[CouponOut]])
async def list_coupons(
    pagination: PageParams = Depends(get_page_params),
    principal: Principal = Depends(require_admin),
    service: CouponService = Depends(get_coupon_service),
):
    items, total = await service.list(principal, page=pagination.page, size=pagination.size)
    return paginated_response(items=items, total=total, page=pagination.page, size=pagination.size)


@router.get("/{coupon_id}", summary="优惠券详情", response_model=ApiResponse[CouponOut])
async def get_coupon(
    coupon_id: str,
    principal: Principal = Depends(require_admin),
    service: CouponService = Depends(get_coupon_service),
):
    coupon = await service.get(principal, coupon_id)
    return success_response(data=coupon)


@router.patch("/{coupon_id}", summary="更新优惠券", response_model=ApiResponse[CouponOut])
async def update_coupon(
    coupon_id: str,
    body: CouponUpdate,
    principal: Principal = Depends(require_admin),
    service: CouponService = Depends(get_coupon_service),
):
    coupon = await service.update(principal, coupon_id, body)
    return success_response(data=coupon, message="Coupon updated")


@router.delete("/{coupon_id}", summary="删除优惠券", response_model=ApiResponse[None])
async def delete_coupon(
    coupon_id: str,
    principal: Principal = Depends(require_admin),
    service: CouponService = Depends(get_coupon_service),
):
    await service.delete(principal, coupon_id)
    return success_response(message="Coupon deleted")
