"""HTTP utilities for analyzers."""

from dataclasses import dataclass
from typing import Any

import httpx

from ..constants import DEFAULT_HTTP_MAX_REDIRECTS, DEFAULT_HTTP_TIMEOUT, DEFAULT_USER_AGENT


@dataclass
class HTTPResult:
    """
    Result of an HTTP request.

    success means a response arrived, whatever its status code; network
    level failures leave success False with the error filled in.
    """

    success: bool
    status_code: int = 0
    final_url: str | None = None
    error: str | None = None
    error_type: str | None = None  # "timeout", "ssl_error", "connection_error", "redirects", "general"


def safe_http_head(
    url: str,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    max_redirects: int = DEFAULT_HTTP_MAX_REDIRECTS,
    user_agent: str | None = None,
    client: httpx.Client | None = None,
    **kwargs: Any,
) -> HTTPResult:
    """
    Perform HTTP HEAD with standardized error handling.

    Provides consistent error handling for:
    - Timeout exceptions
    - SSL/TLS errors
    - Connection errors
    - Redirect loops
    - Other general errors

    HTTP 4xx/5xx statuses are NOT errors here; the caller decides what a
    status means.

    Args:
        url: URL to check
        timeout: Request timeout in seconds (default from constants)
        max_redirects: Redirects to follow before giving up
        user_agent: Custom user agent string (default from constants)
        client: Shared client to reuse (its own timeout/redirect settings apply)
        **kwargs: Additional httpx.Client arguments

    Returns:
        HTTPResult with the status code or error information

    Example:
        >>> result = safe_http_head("https://example.com/offer")
        >>> if result.success and result.status_code >= 400:
        ...     print(f"Broken link: {result.status_code}")
    """
    headers = {"User-Agent": user_agent or DEFAULT_USER_AGENT}

    try:
        if client is not None:
            response = client.head(url, headers=headers)
        else:
            with httpx.Client(
                timeout=timeout,
                follow_redirects=True,
                max_redirects=max_redirects,
                **kwargs,
            ) as own_client:
                response = own_client.head(url, headers=headers)
        return HTTPResult(
            success=True,
            status_code=response.status_code,
            final_url=str(response.url),
        )

    except httpx.TimeoutException:
        return HTTPResult(
            success=False,
            error=f"Timeout accessing {url} ({timeout}s)",
            error_type="timeout",
        )

    except httpx.TooManyRedirects:
        return HTTPResult(
            success=False,
            error=f"Too many redirects accessing {url} (max {max_redirects})",
            error_type="redirects",
        )

    except httpx.ConnectError as e:
        # Check if it's SSL-related error
        error_msg = str(e).lower()
        is_ssl_error = any(ssl_term in error_msg for ssl_term in ["ssl", "certificate", "tls"])

        if is_ssl_error:
            return HTTPResult(
                success=False,
                error=f"SSL error accessing {url}: {e}",
                error_type="ssl_error",
            )
        else:
            return HTTPResult(
                success=False,
                error=f"Connection error accessing {url}: {e}",
                error_type="connection_error",
            )

    except Exception as e:
        return HTTPResult(
            success=False,
            error=f"Error accessing {url}: {e}",
            error_type="general",
        )
