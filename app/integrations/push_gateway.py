# 푸시 게이트웨이 연동 (멀티캐스트 발송, 수신자별 성공/실패)

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings

MULTICAST_PATH = "/v1/send-multicast"

# 게이트웨이가 "토큰이 영구적으로 무효"라고 알려주는 에러 코드 → 레지스트리에서 삭제 대상
INVALID_TOKEN_CODES = frozenset(
    {
        "messaging/invalid-registration-token",
        "messaging/registration-token-not-registered",
    }
)


@dataclass(frozen=True)
class SendResult:
    token: str
    success: bool
    error_code: Optional[str] = None

    @property
    def token_invalid(self) -> bool:
        return not self.success and self.error_code in INVALID_TOKEN_CODES


@dataclass(frozen=True)
class MulticastResponse:
    results: List[SendResult]

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)


def _error_code(response: Dict[str, Any]) -> Optional[str]:
    error = response.get("error")
    return error.get("code") if isinstance(error, dict) else None


class PushGateway:
    """멀티캐스트 푸시 발송 클라이언트. transport는 테스트에서 httpx.MockTransport 주입용."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def send_multicast(
        self,
        tokens: List[str],
        notification: Dict[str, Any],
        data: Dict[str, str],
    ) -> MulticastResponse:
        """
        토큰 목록에 같은 payload 한 번 발송. 결과는 tokens와 같은 순서.
        게이트웨이 자체 오류(HTTP 오류, JSON이 아닌 응답, 형식 불일치, 응답 개수 불일치)는 RuntimeError.
        """
        if not tokens:
            return MulticastResponse(results=[])

        url = f"{self.base_url}{MULTICAST_PATH}"
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        body = {"tokens": tokens, "notification": notification, "data": data}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(url, json=body, headers=headers)
            if resp.status_code != 200:
                raise RuntimeError(f"Push gateway error: HTTP {resp.status_code}")
            try:
                payload = resp.json()
            except ValueError as exc:
                raise RuntimeError("Push gateway returned a body that is not JSON") from exc

        if not isinstance(payload, dict):
            raise RuntimeError("Push gateway returned an unexpected payload")
        responses = payload.get("responses") or []
        if not isinstance(responses, list) or not all(isinstance(r, dict) for r in responses):
            raise RuntimeError("Push gateway returned malformed per-token responses")
        if len(responses) != len(tokens):
            raise RuntimeError("Push gateway returned a response count that does not match the tokens sent")

        return MulticastResponse(
            results=[
                SendResult(
                    token=token,
                    success=bool(r.get("success")),
                    error_code=_error_code(r),
                )
                for token, r in zip(tokens, responses)
            ]
        )


_gateway: Optional[PushGateway] = None


def get_push_gateway() -> PushGateway:
    """FastAPI 의존성. 설정 기반 싱글턴 (테스트에서는 dependency_overrides로 교체)."""
    global _gateway
    if _gateway is None:
        _gateway = PushGateway(
            settings.PUSH_GATEWAY_URL,
            api_key=settings.PUSH_GATEWAY_API_KEY,
            timeout=settings.PUSH_GATEWAY_TIMEOUT_SEC,
        )
    return _gateway
