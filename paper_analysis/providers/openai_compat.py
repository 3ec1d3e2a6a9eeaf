"""
OpenAI 호환 Chat Completions transport (httpx).

openai / deepseek / bytedance / custom 공통:
- Authorization: Bearer <api_key>
- POST /chat/completions  {model, messages, temperature, max_tokens, top_p, stream:false}
- 비정상 응답 본문: {"error": {"message", "code"}}

재시도/타임아웃은 LLMProvider._with_retry에서 처리. 여기서는 1회 시도만.
"""

import json
import logging
from typing import Any

import httpx

from .base import (
    CONNECTION_RESET,
    INVALID_RESPONSE,
    TIMED_OUT,
    ChatRequest,
    ChatResponse,
    LLMProvider,
    ModelInfo,
    ProviderConfig,
    TokenUsage,
    TransportError,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """
    OpenAI 호환 API 공통 구현.

    Usage:
        provider = OpenAIProvider(ProviderConfig(kind="openai", api_key="sk-..."))
        response = await provider.chat(request)
    """

    #: True면 GET /models 로 live 조회
    SUPPORTS_MODEL_DISCOVERY = False

    #: 키 검증 probe에 사용할 모델 (None이면 GET /models)
    PROBE_MODEL: str | None = None

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            config: 백엔드 설정
            http_client: 주입용 httpx 클라이언트 (테스트/공유 커넥션 풀)
        """
        super().__init__(config)
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """httpx 클라이언트 (lazy init)."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _build_url(self, path: str) -> str:
        clean_path = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{clean_path}"

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """
        HTTP 요청 1회.

        Raises:
            TransportError: 연결/타임아웃/비정상 응답/파싱 실패
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._get_client().request(
                method,
                self._build_url(path),
                headers=headers,
                json=payload,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                TIMED_OUT, f"{self.provider_name} request timed out"
            ) from e
        except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise TransportError(CONNECTION_RESET, str(e) or "Connection reset") from e

        raw_text = response.text
        parsed: Any = None
        if raw_text:
            try:
                parsed = json.loads(raw_text)
            except json.JSONDecodeError as e:
                if response.is_success:
                    raise TransportError(
                        INVALID_RESPONSE,
                        f"Failed to parse {self.provider_name} response",
                    ) from e

        if not response.is_success:
            error_body = parsed.get("error") if isinstance(parsed, dict) else None
            if not isinstance(error_body, dict):
                error_body = {}
            message = (
                error_body.get("message")
                or raw_text
                or f"{self.provider_name} API request failed: "
                f"{response.status_code} {response.reason_phrase}"
            )
            code = error_body.get("code") or f"HTTP_{response.status_code}"
            raise TransportError(str(code), message, status=response.status_code)

        return parsed if parsed is not None else {}

    # =========================================================================
    # Backend hooks
    # =========================================================================

    def _build_payload(self, request: ChatRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [m.to_dict() for m in request.messages],
            "temperature": request.temperature,
            "stream": False,
        }
        # 선택적 파라미터
        if request.max_output_tokens is not None:
            payload["max_tokens"] = request.max_output_tokens
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        return payload

    async def _chat_once(self, request: ChatRequest) -> ChatResponse:
        data = await self._request(
            "POST", "/chat/completions", self._build_payload(request)
        )
        return self._parse_chat_response(data, request)

    def _parse_chat_response(self, data: Any, request: ChatRequest) -> ChatResponse:
        choices = data.get("choices") if isinstance(data, dict) else None
        choice = choices[0] if choices else None
        if not isinstance(choice, dict) or not isinstance(choice.get("message"), dict):
            raise TransportError(
                INVALID_RESPONSE, f"Invalid response from {self.provider_name}"
            )

        return ChatResponse(
            text=choice["message"].get("content") or "",
            model=data.get("model") or request.model,
            finish_reason=choice.get("finish_reason") or None,
            usage=TokenUsage.from_openai(data.get("usage")),
        )

    async def _fetch_models(self) -> list[ModelInfo]:
        if not self.SUPPORTS_MODEL_DISCOVERY:
            return []
        data = await self._request("GET", "/models")
        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return []
        model_ids = [
            entry["id"]
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get("id"), str)
        ]
        return [
            self._model_info(model_id)
            for model_id in model_ids
            if self._accept_model(model_id)
        ]

    def _accept_model(self, model_id: str) -> bool:
        return True

    def _model_info(self, model_id: str) -> ModelInfo:
        return ModelInfo(id=model_id, name=model_id, max_tokens=8192)

    async def _probe(self) -> None:
        if self.PROBE_MODEL is None:
            await self._request("GET", "/models")
            return
        await self._request(
            "POST",
            "/chat/completions",
            {
                "model": self.PROBE_MODEL,
                "messages": [{"role": "user", "content": "test"}],
                "max_tokens": 10,
            },
        )
