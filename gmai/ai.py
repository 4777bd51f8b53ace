"""Chat backends: the hosted chat proxy and a local llama.cpp model."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError
from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .prompts import build_system_prompt, normalize_document_urls

try:  # pragma: no cover - optional dependency in some test environments
    from llama_cpp import Llama
except ImportError as exc:  # pragma: no cover
    Llama = None  # type: ignore[assignment]
    LLAMA_IMPORT_ERROR = exc
else:  # pragma: no cover
    LLAMA_IMPORT_ERROR = None


DEFAULT_MODEL = "gpt-4o-mini"
CHAT_FUNCTION_PATH = "/.netlify/functions/chat"
MISSING_BASE_URL_ERROR = "Configure the backend URL in Settings (/config api.base_url <url>)."
LIMIT_REACHED_ERROR = "Message limit reached."
logger = logging.getLogger(__name__)
MODEL_SEARCH_DIRS = [
    Path.cwd() / "models",
    Path("/srv/gmai/models"),
    Path("/opt/llama.cpp/models"),
]

Message = Mapping[str, str]


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


@dataclass
class ChatResult:
    """Outcome of one chat round-trip."""

    content: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatBackendError(RuntimeError):
    """Raised when a chat backend cannot produce a reply."""


@dataclass
class ProxyChatClient:
    """Client for the serverless chat proxy.

    The provider API key lives on the proxy; the client only sends the
    conversation, the reference document URLs and the vault summary.
    """

    base_url: str = ""
    patreon_token: str = ""
    model: str = DEFAULT_MODEL
    timeout: float = 60.0
    document_urls: List[str] = field(default_factory=list)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}{CHAT_FUNCTION_PATH}"

    def has_valid_base(self) -> bool:
        base = self.base_url.strip()
        return base.startswith("http://") or base.startswith("https://")

    def chat(
        self,
        messages: Sequence[Message],
        *,
        vault_context: str = "",
        document_urls: Optional[Sequence[str]] = None,
        model: Optional[str] = None,
    ) -> ChatResult:
        """Send the conversation to the proxy and return the assistant reply."""

        if not self.base_url.strip():
            return ChatResult(error=MISSING_BASE_URL_ERROR)

        body = {
            "messages": [dict(message) for message in messages],
            "model": model or self.model or DEFAULT_MODEL,
            "documentUrls": "\n".join(normalize_document_urls(
                self.document_urls if document_urls is None else document_urls
            )),
            "vaultContext": vault_context or "",
        }
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.patreon_token:
            headers["X-Patreon-Token"] = self.patreon_token

        req = Request(
            self.endpoint,
            data=json.dumps(body).encode("utf-8"),
            headers=headers,
            method="POST",
        )

        try:
            with urlopen(req, timeout=self.timeout) as resp:
                data = _decode_json(resp.read())
        except HTTPError as exc:
            data = _decode_json(_read_error_body(exc))
            message = data.get("error") or data.get("message") or f"Error {exc.code}"
            logger.warning("Chat proxy returned HTTP %s", exc.code)
            return ChatResult(error=_error_text(message))
        except URLError as exc:
            logger.error("Chat proxy connection error: %s", exc.reason)
            return ChatResult(error=f"Connection error: {exc.reason}")
        except (OSError, ValueError) as exc:
            logger.error("Chat proxy request failed: %s", exc)
            return ChatResult(error=str(exc) or "Connection error.")

        return parse_proxy_response(data)


def parse_proxy_response(data: Mapping[str, Any]) -> ChatResult:
    """Map a proxy JSON body onto a :class:`ChatResult`."""

    if data.get("limitReached"):
        return ChatResult(error=LIMIT_REACHED_ERROR)

    if data.get("error"):
        return ChatResult(error=_error_text(data["error"]))

    content: Any = None
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0] if isinstance(choices[0], Mapping) else {}
        message = first.get("message")
        if isinstance(message, Mapping):
            content = message.get("content")
    if content is None:
        content = data.get("content")
    return ChatResult(content=str(content or "").strip())


def _error_text(error: Any) -> str:
    if isinstance(error, str):
        return error
    if isinstance(error, Mapping):
        return str(error.get("message") or error.get("code") or "Server error")
    return "Server error"


def _read_error_body(exc: HTTPError) -> bytes:
    try:
        return exc.read() or b""
    except OSError:
        return b""


def _decode_json(raw: bytes) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class LlamaChatClient:
    """Drives a local llama.cpp model through llama-cpp-python bindings."""

    model_path: Optional[Path] = None
    timeout: float = float(os.environ.get("LLAMA_CPP_TIMEOUT", "120"))
    max_tokens: int = _env_int("LLAMA_CPP_MAX_TOKENS", 256)
    temperature: float = float(os.environ.get("LLAMA_CPP_TEMPERATURE", "0.2"))
    n_ctx: int = _env_int("LLAMA_CPP_CTX", 4096)
    n_threads: int = _env_int("LLAMA_CPP_THREADS", os.cpu_count() or 2)
    document_urls: List[str] = field(default_factory=list)
    llama_client: Optional["Llama"] = None
    _client_lock: "threading.Lock" = field(
        default_factory=lambda: __import__("threading").Lock(),
        init=False,
        repr=False,
    )

    def chat(
        self,
        messages: Sequence[Message],
        *,
        vault_context: str = "",
        document_urls: Optional[Sequence[str]] = None,
        model: Optional[str] = None,
    ) -> ChatResult:
        """Build the system prompt locally and run a chat completion."""

        system_prompt = build_system_prompt(
            self.document_urls if document_urls is None else document_urls,
            vault_context,
        )
        payload = [{"role": "system", "content": system_prompt}]
        payload.extend(dict(message) for message in messages if message.get("role") != "system")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("[llama system prompt]\n%s", system_prompt)
        try:
            return ChatResult(content=self._run_llama(payload))
        except ChatBackendError as exc:
            return ChatResult(error=f"[llama.cpp error] {exc}")

    def _run_llama(self, messages: List[Dict[str, str]]) -> str:
        client = self._ensure_client()

        def _invoke():
            return client.create_chat_completion(
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=False,
            )

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(_invoke)
            try:
                completion = future.result(timeout=self.timeout)
            except TimeoutError:
                future.cancel()
                raise ChatBackendError(
                    f"llama timed out after {self.timeout} seconds; reduce "
                    "LLAMA_CPP_MAX_TOKENS or raise LLAMA_CPP_TIMEOUT."
                ) from None
            except Exception as exc:  # pragma: no cover
                raise ChatBackendError(str(exc)) from exc

        text = (completion["choices"][0]["message"].get("content") or "").strip()
        logger.debug("llama completed (chars=%s)", len(text))
        return text

    def _ensure_client(self) -> "Llama":
        if self.llama_client is not None:
            return self.llama_client

        if Llama is None:
            raise ChatBackendError(
                "llama-cpp-python is not installed. Run 'pip install llama-cpp-python' "
                f"(original error: {LLAMA_IMPORT_ERROR})"
            )

        model = self._detect_model_path()
        if model is None:
            raise ChatBackendError(
                "No model found. Place a .gguf under ./models or set LLAMA_CPP_MODEL."
            )

        with self._client_lock:
            if self.llama_client is None:
                logger.info(
                    "Loading llama model: %s (threads=%s ctx=%s)",
                    model,
                    self.n_threads,
                    self.n_ctx,
                )
                self.llama_client = Llama(  # type: ignore[call-arg]
                    model_path=str(model),
                    n_ctx=self.n_ctx,
                    n_threads=self.n_threads,
                    verbose=False,
                )

        return self.llama_client

    def _detect_model_path(self) -> Optional[Path]:
        """Resolve the model path, preferring env vars then local model directories."""

        candidates: List[Path] = []
        env_value = os.environ.get("LLAMA_CPP_MODEL")
        if env_value:
            candidates.append(Path(env_value).expanduser())
        if self.model_path is not None:
            candidates.append(self.model_path)
        for directory in MODEL_SEARCH_DIRS:
            if directory.exists():
                candidates.extend(sorted(directory.glob("*.gguf")))

        for candidate in candidates:
            resolved = candidate.expanduser()
            if resolved.exists():
                return resolved
        return None


def build_chat_backend(config: Optional[Mapping[str, Any]]):
    """Create the chat backend selected by ``api.backend``."""

    api_cfg = (config or {}).get("api", {}) or {}
    document_urls = normalize_document_urls(api_cfg.get("document_urls"))
    if str(api_cfg.get("backend", "proxy")).lower() == "llama":
        model_path = api_cfg.get("model_path")
        return LlamaChatClient(
            model_path=Path(model_path).expanduser() if model_path else None,
            document_urls=document_urls,
        )
    return ProxyChatClient(
        base_url=str(api_cfg.get("base_url", "") or "").strip().rstrip("/"),
        patreon_token=str(api_cfg.get("patreon_token", "") or "").strip(),
        model=str(api_cfg.get("model") or DEFAULT_MODEL),
        timeout=float(api_cfg.get("timeout", 60)),
        document_urls=document_urls,
    )


__all__ = [
    "ChatBackendError",
    "ChatResult",
    "LlamaChatClient",
    "ProxyChatClient",
    "build_chat_backend",
    "parse_proxy_response",
]
