"""HTTP client with retries and timeouts for reference-table downloads."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from prg_convert.common.constants import USER_AGENT
from prg_convert.common.errors import StageError
from prg_convert.common.fs import ensure_dir

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
CHUNK_SIZE = 1024 * 128


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 20.0
    read: float = 120.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 5
    multiplier: float = 1.0
    max_wait: float = 30.0


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"


class RetryableHttpError(HttpRequestError):
    pass


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "*/*"}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status: {status}")
        if status >= 400:
            raise HttpRequestError(f"HTTP status: {status}")

    def _download(self, url: str, target_path: Path, headers: dict[str, str] | None) -> Path:
        try:
            response = self.session.request(
                method="GET",
                url=url,
                headers=self._headers(headers),
                timeout=(self.timeout.connect, self.timeout.read),
                stream=True,
            )
        except requests.ConnectionError as exc:
            raise RetryableHttpError(f"Connection failed: {url}") from exc
        except requests.RequestException as exc:
            raise HttpRequestError(f"Request failed: {url}") from exc

        with response:
            self._raise_for_status_or_retry(response)
            ensure_dir(target_path.parent)
            partial_path = target_path.with_name(target_path.name + ".part")
            with partial_path.open("wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        partial_path.replace(target_path)
        return target_path

    def download_file(self, url: str, target_path: Path, *, headers: dict[str, str] | None = None) -> Path:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=1.0,
            ),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )
        def _wrapped() -> Path:
            return self._download(url, target_path, headers)

        return _wrapped()
