"""
全局异常处理器

领域异常只携带 ErrorKind；HTTP 状态码的映射只在这里完成。
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback
import uuid
from starlette import status as http_status

from .response import error_response
from shared.codes import ErrorKind
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


ERROR_KIND_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: http_status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: http_status.HTTP_409_CONFLICT,
    ErrorKind.UNPROCESSABLE: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INTERNAL: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_HTTP_STATUS_KIND: dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.VALIDATION,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.UNPROCESSABLE,
}


def status_for(kind: ErrorKind) -> int:
    return ERROR_KIND_STATUS.get(kind, http_status.HTTP_500_INTERNAL_SERVER_ERROR)


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常"""
        response = error_response(
            kind=exc.kind,
            message=exc.message,
            details=exc.context,
            field=exc.field,
            request_id=_request_id(request),
        )
        status_code = status_for(exc.kind)
        if status_code >= 500:
            logger.error("business_exception", kind=exc.kind.value, error=exc.message)
        # 401 返回 WWW-Authenticate
        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常（统一为 400）"""
        errors = exc.errors()

        # 提取第一个错误的详细信息
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        response = error_response(
            kind=ErrorKind.VALIDATION,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            details={"errors": jsonable_encoder(errors)},
            field=field or None,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """处理HTTP异常"""
        kind = _HTTP_STATUS_KIND.get(exc.status_code, ErrorKind.INTERNAL)
        response = error_response(
            kind=kind,
            message=str(exc.detail),
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = _request_id(request)

        # 在开发环境可以返回详细错误信息
        details = None
        if app.debug:
            details = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        response = error_response(
            kind=ErrorKind.INTERNAL,
            message="Internal server error",
            details=details,
            request_id=request_id,
        )

        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )

        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )
