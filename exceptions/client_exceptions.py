"""
exceptions/client_exceptions.py

API 관련 예외 처리 모듈

nexon_client.py / maplescouter_client.py / renderer.py 에서 사용되는 예외 클래스 정의
"""

from __future__ import annotations
from typing import Optional

import httpx
from exceptions.base import ClientBaseException


class NexonAPIError(ClientBaseException):
    """Nexon API 사용 중 발생하는 오류

    Nexon Open API 오류 응답의 `error.name` (예: OPENAPI00004)을 `code`로 보관
    """
    def __init__(self, message: str = "Nexon API 오류가 발생했어양", code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

class NexonAPICharacterNotFound(NexonAPIError):
    """Nexon API 캐릭터 없음 오류"""

class NexonAPIBadRequest(NexonAPIError):
    """Nexon API Bad Request 오류"""

class NexonAPIForbidden(NexonAPIError):
    """Nexon API Forbidden 오류"""

class NexonAPITooManyRequests(NexonAPIError):
    """Nexon API Too Many Requests 오류"""

class NexonAPIServiceUnavailable(NexonAPIError):
    """Nexon API Service Unavailable 오류"""

class NexonAPIDataNotReady(NexonAPIError):
    """Nexon API 데이터 준비중 (OPENAPI00009)"""


# Nexon Open API 오류 코드 중 데이터 준비중 코드
NEXON_DATA_NOT_READY_CODE: str = "OPENAPI00009"


def nexon_api_error_handler(response: httpx.Response) -> None:
    """Nexon Open API 오류 응답을 예외로 변환

    Args:
        response (httpx.Response): 200이 아닌 응답

    Raises:
        NexonAPIError: 상태코드/오류코드에 맞는 하위 예외
    """
    status = response.status_code
    msg = None
    code = None
    try:
        payload = response.json()
        error = payload.get("error") if isinstance(payload, dict) else None
        msg = (error or {}).get("message")
        code = (error or {}).get("name")
    except ValueError:
        msg = response.text.strip()

    prefix = f"{status} : "
    if code == NEXON_DATA_NOT_READY_CODE:
        raise NexonAPIDataNotReady(f"{prefix}{msg or 'Data being prepared'}", code=code)
    if status == 400:
        raise NexonAPIBadRequest(f"{prefix}{msg or 'Bad Request'}", code=code)
    elif status == 403:
        raise NexonAPIForbidden(f"{prefix}{msg or 'Forbidden'}", code=code)
    elif status == 429:
        raise NexonAPITooManyRequests(f"{prefix}{msg or 'Too Many Requests'}", code=code)
    elif status in (500, 503):
        raise NexonAPIServiceUnavailable(f"{prefix}{msg or 'Internal Server Error'}", code=code)
    else:
        raise NexonAPIError(f"{prefix}{msg or 'Unknown Error'}", code=code)


class ScouterAPIError(ClientBaseException):
    """MapleScouter API 사용 중 발생하는 오류"""
    def __init__(self, message: str = "환산 사이트 API 호출에 실패했어양"):
        super().__init__(message)
        self.message = message


class RenderServiceError(ClientBaseException):
    """HTML -> 이미지 변환 서비스 오류"""
    def __init__(self, message: str = "이미지 렌더링에 실패했어양"):
        super().__init__(message)
        self.message = message
