"""分级回退调用器。

按固定优先级依次调用一组模型变体：

1. 变体返回“不存在”（默认 HTTP 404）时记录日志并尝试下一个。
2. 其他非成功响应直接失败，抛出带后端信息的 ProviderError。
3. 全部变体都不存在时抛出 AllVariantsExhausted。

调用严格串行。聊天、语音转写与待办拆解共用同一套逻辑，
区别只在于 build_request 回调如何根据变体名构造请求。
"""

from typing import Callable, List, Literal, Sequence

import httpx

from assist_core.domain.exceptions import (
    AllVariantsExhausted,
    NetworkError,
    ProviderError,
    ProviderNotFound,
)
from assist_core.domain.models import ModelInvocationOutcome, ProviderRequest
from assist_core.infrastructure.logging.logger import logger

Verdict = Literal["ok", "next", "fatal"]
RequestBuilder = Callable[[str], ProviderRequest]
Classifier = Callable[[httpx.Response], Verdict]


def classify_status(resp: httpx.Response) -> Verdict:
    """默认分类：2xx 成功，404 换下一个变体，其余致命。"""

    if 200 <= resp.status_code < 300:
        return "ok"
    if resp.status_code == 404:
        return "next"
    return "fatal"


class TieredFallbackInvoker:
    def __init__(self, settings, classifier: Classifier = classify_status):
        self._settings = settings
        self._classifier = classifier

    def invoke(
        self,
        provider: str,
        variants: Sequence[str],
        build_request: RequestBuilder,
    ) -> ModelInvocationOutcome:
        if not variants:
            raise AllVariantsExhausted(
                code="ALL_VARIANTS_EXHAUSTED",
                message=f"No model variants configured for {provider}",
                http_status=503,
                provider=provider,
            )
        attempted: List[str] = []
        with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
            for variant in variants:
                attempted.append(variant)
                try:
                    return self._attempt(client, provider, variant, build_request, attempted)
                except ProviderNotFound as e:
                    logger.warning(
                        "Model variant not found, trying next",
                        extra={"extra": {"provider": provider, "variant": variant, "detail": e.message[:200]}},
                    )
        logger.error(
            "All model variants exhausted",
            extra={"extra": {"provider": provider, "variants": attempted}},
        )
        raise AllVariantsExhausted(
            code="ALL_VARIANTS_EXHAUSTED",
            message=f"All {provider} models failed (not found): {', '.join(attempted)}",
            http_status=503,
            provider=provider,
            variants=attempted,
        )

    def _attempt(
        self,
        client: httpx.Client,
        provider: str,
        variant: str,
        build_request: RequestBuilder,
        attempted: List[str],
    ) -> ModelInvocationOutcome:
        req = build_request(variant)
        logger.info("Calling provider", extra={"extra": {"provider": provider, "variant": variant}})
        try:
            resp = client.post(req.url, json=req.json, headers=req.headers, params=req.params or None)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=f"{provider} ({variant}): {e}", provider=provider)

        verdict = self._classifier(resp)
        if verdict == "next":
            raise ProviderNotFound(
                code="MODEL_NOT_FOUND",
                message=resp.text,
                http_status=resp.status_code,
                provider=provider,
                variant=variant,
            )
        if verdict == "fatal":
            logger.error(
                "Provider error",
                extra={"extra": {"provider": provider, "variant": variant, "status": resp.status_code}},
            )
            code = "RATE_LIMIT" if resp.status_code == 429 else "API_ERROR"
            raise ProviderError(
                code=code,
                message=f"{provider} API error ({variant}): {resp.status_code} - {resp.text}",
                http_status=502,
                provider=provider,
                variant=variant,
                upstream_status=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(
                code="MALFORMED_RESPONSE",
                message=f"{provider} returned invalid JSON ({variant}): {e}",
                http_status=502,
                provider=provider,
                variant=variant,
            )
        if not isinstance(data, dict):
            data = {"data": data}
        logger.info("Provider responded", extra={"extra": {"provider": provider, "variant": variant}})
        return ModelInvocationOutcome(
            provider=provider,
            variant=variant,
            status_code=resp.status_code,
            raw=data,
            attempted=list(attempted),
        )
