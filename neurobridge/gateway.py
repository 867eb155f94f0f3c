import logging
from typing import Dict, List, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    AuthenticationError,
    OpenAI,
    PermissionDeniedError,
    RateLimitError,
)

from neurobridge.config import Config

logger = logging.getLogger(__name__)


class QuizGenerationError(RuntimeError):
    pass


class GatewayError(QuizGenerationError):
    status_code: Optional[int] = None

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class GatewayConfigError(GatewayError):
    pass


class GatewayAuthError(GatewayError):
    status_code = 401


class GatewayBillingError(GatewayError):
    status_code = 402


class GatewayRateLimitError(GatewayError):
    status_code = 429


class GatewayRequestError(GatewayError):
    pass


class GatewayEmptyResponseError(GatewayError):
    pass


def _server_message(exc: APIStatusError) -> str:
    body = exc.body
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return ""


class LLMGateway:
    """Chat-completion client for an OpenAI-compatible gateway (OpenRouter by default).

    One call per request and no retries; failures surface as classified
    ``GatewayError`` subclasses whose message tells the user what to do next.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, http_client=None):
        self.api_key = Config.OPENROUTER_API_KEY if api_key is None else api_key
        self.base_url = base_url or Config.OPENROUTER_BASE_URL
        self.client = (
            OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                max_retries=0,
                default_headers={"HTTP-Referer": Config.APP_URL, "X-Title": Config.APP_TITLE},
                http_client=http_client,
            )
            if self.api_key
            else None
        )

    @property
    def configured(self) -> bool:
        return self.client is not None

    def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 3000,
    ) -> str:
        if not self.client:
            raise GatewayConfigError(
                "OpenRouter API key not found. Add OPENROUTER_API_KEY to your .env file"
            )

        model = model or Config.LLM_MODEL
        logger.info(
            "Calling chat completion (model=%s, messages=%s, temperature=%s, max_tokens=%s)",
            model,
            len(messages),
            temperature,
            max_tokens,
        )
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except AuthenticationError as exc:
            logger.error("Gateway rejected credentials (status=%s)", exc.status_code)
            raise GatewayAuthError("Invalid API key. Check your key at https://openrouter.ai/keys") from exc
        except PermissionDeniedError as exc:
            logger.error("Gateway denied request (status=%s)", exc.status_code)
            raise GatewayBillingError(
                "Insufficient credits. Add credits at https://openrouter.ai/credits", status_code=403
            ) from exc
        except RateLimitError as exc:
            logger.error("Gateway rate limit hit (status=%s)", exc.status_code)
            raise GatewayRateLimitError("Rate limit exceeded. Wait 60 seconds and try again") from exc
        except APIStatusError as exc:
            logger.error("Gateway request failed (status=%s, body=%s)", exc.status_code, exc.body)
            if exc.status_code == 402:
                raise GatewayBillingError(
                    "Insufficient credits. Add credits at https://openrouter.ai/credits"
                ) from exc
            message = _server_message(exc) or f"API request failed: {exc.status_code}"
            raise GatewayRequestError(message, status_code=exc.status_code) from exc
        except APIConnectionError as exc:
            logger.error("Gateway unreachable: %s", exc)
            raise GatewayRequestError(f"API request failed: {exc}") from exc

        logger.info("Chat completion response received (choices=%s)", len(response.choices or []))
        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        if not content.strip():
            raise GatewayEmptyResponseError("Empty response from the model")

        logger.info("Completion content extracted (length=%s)", len(content))
        return content
