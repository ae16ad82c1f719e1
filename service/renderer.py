import io
from typing import Optional

import httpx

from bot_logger import logger
from exceptions.client_exceptions import RenderServiceError


class HtmlRenderer:
    """HTML 문서를 PNG 이미지로 변환 (외부 headless 렌더링 서비스 사용)

    요청: POST {url}  body = {"html": ..., "width": ..., "type": "png"}
    응답: image/png 바이너리
    """

    def __init__(
            self,
            url: str,
            timeout: float = 20,
            width: int = 1280,
            http_client: Optional[httpx.AsyncClient] = None,
        ):
        self.url = url
        self.width = width
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def render(self, html: str) -> io.BytesIO:
        if not self.enabled:
            raise RenderServiceError("렌더링 서비스가 설정되지 않았어양")
        try:
            response = await self._client.post(
                self.url,
                json={"html": html, "width": self.width, "type": "png"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"렌더링 서비스 요청 실패: {e}")
            raise RenderServiceError(f"이미지 렌더링 서비스에 연결하지 못했어양 ({type(e).__name__})") from e

        if response.status_code != 200 or not response.content:
            logger.warning(f"렌더링 서비스 오류 응답 (status={response.status_code})")
            raise RenderServiceError(f"이미지 렌더링에 실패했어양 (HTTP {response.status_code})")

        buffer = io.BytesIO(response.content)
        buffer.seek(0)
        return buffer
