"""
HTTP layer of the storefront API client.

Wraps a requests.Session: JSON headers, bearer token, one token refresh on
401, and ApiResponse/ApiError results. Nothing else is retried.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

REFRESH_PATH = 'auth/refresh/'
# a 401 from these means bad credentials, not an expired access token
CREDENTIAL_PATHS = ('auth/login/', 'auth/register/', REFRESH_PATH, 'auth/verify-otp/', 'auth/resend-otp/')


@dataclass
class ApiResponse:
    data: Any
    status: int
    success: bool = True
    message: Optional[str] = None


class ApiError(Exception):
    """Failed API call; status is 0 when the server could not be reached"""

    def __init__(self, message: str, status: int = 0, data: Any = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data
        self.error_code = error_code

    def __str__(self):
        return f"{self.message} (status {self.status})"


def _error_message(data, default):
    if isinstance(data, dict):
        for key in ('error', 'detail', 'message'):
            if data.get(key):
                return str(data[key])
    return default


class HttpClient:
    """Thin JSON client for the storefront REST API"""

    def __init__(self, base_url: str, token: Optional[str] = None, refresh_token: Optional[str] = None,
                 timeout: float = 30, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.refresh_token = refresh_token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})

    def set_tokens(self, token: Optional[str], refresh_token: Optional[str] = None):
        self.token = token
        if refresh_token is not None:
            self.refresh_token = refresh_token

    def clear_tokens(self):
        self.token = None
        self.refresh_token = None

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, multipart=False) -> Dict[str, str]:
        headers = {}
        if not multipart:
            headers['Content-Type'] = 'application/json'
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _send(self, method, path, params=None, json=None, data=None, files=None):
        try:
            return self.session.request(
                method,
                self.url(path),
                params=params,
                json=json,
                data=data,
                files=files,
                headers=self._headers(multipart=files is not None),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.error(f"API timeout: {method} {path} ({self.timeout}s)")
            raise ApiError(f'Request timeout ({self.timeout}s)', status=0)
        except requests.exceptions.RequestException as e:
            logger.error(f"API connection error: {method} {path}: {str(e)}")
            raise ApiError(f'Could not reach the server: {str(e)}', status=0)

    def refresh(self):
        """Exchange the refresh token for a new access token; clears both tokens on failure"""
        if not self.refresh_token:
            self.clear_tokens()
            raise ApiError('Session expired. Please log in again.', status=401)
        try:
            response = self.session.post(self.url(REFRESH_PATH), json={'refresh': self.refresh_token},
                                         headers={'Content-Type': 'application/json'}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Token refresh failed: {str(e)}")
            self.clear_tokens()
            raise ApiError('Session expired. Please log in again.', status=0)

        body = _json(response)
        if not response.ok or not isinstance(body, dict) or not body.get('access'):
            logger.warning(f"Token refresh rejected with status {response.status_code}")
            self.clear_tokens()
            raise ApiError('Session expired. Please log in again.', status=response.status_code, data=body)
        self.set_tokens(body['access'], body.get('refresh'))

    @staticmethod
    def _can_refresh(path):
        return path.lstrip('/').split('?')[0] not in CREDENTIAL_PATHS

    def request(self, method: str, path: str, params=None, json=None, data=None, files=None,
                raw: bool = False) -> ApiResponse:
        method = method.upper()
        response = self._send(method, path, params=params, json=json, data=data, files=files)
        if response.status_code == 401 and self.refresh_token and self._can_refresh(path):
            self.refresh()
            if _rewind(files):
                response = self._send(method, path, params=params, json=json, data=data, files=files)
            else:
                logger.warning(f"Not replaying {method} {path}: the upload stream cannot be rewound")

        if raw and response.ok:
            return ApiResponse(data=response.content, status=response.status_code)

        body = _json(response)
        if not response.ok:
            if response.status_code >= 500:
                logger.error(f"API error: {method} {path} -> {response.status_code}")
            raise ApiError(_error_message(body, response.reason or 'Request failed'),
                           status=response.status_code, data=body,
                           error_code=body.get('code') if isinstance(body, dict) else None)

        message = body.get('message') if isinstance(body, dict) else None
        if method == 'POST' and isinstance(body, dict) and body.get('success') is False:
            raise ApiError(_error_message(body, 'The server rejected the request'), status=response.status_code,
                           data=body, error_code=body.get('errorCode') or body.get('code'))
        return ApiResponse(data=body, status=response.status_code, success=True, message=message)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return self.request('GET', path, params=params)

    def post(self, path: str, json: Any = None) -> ApiResponse:
        return self.request('POST', path, json=json)

    def put(self, path: str, json: Any = None) -> ApiResponse:
        return self.request('PUT', path, json=json)

    def patch(self, path: str, json: Any = None) -> ApiResponse:
        return self.request('PATCH', path, json=json)

    def delete(self, path: str) -> ApiResponse:
        return self.request('DELETE', path)

    def upload(self, path: str, file, filename: str, fields: Optional[Dict[str, Any]] = None,
               params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        """POST a multipart form with a "file" field"""
        return self.request('POST', path, params=params, data=fields or {}, files={'file': (filename, file)})

    def download(self, path: str, params: Optional[Dict[str, Any]] = None) -> bytes:
        return self.request('GET', path, params=params, raw=True).data


def _json(response):
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {'detail': response.text[:500]}


def _rewind(files):
    """Seek upload streams back to the start; False when one cannot be rewound"""
    for value in (files or {}).values():
        stream = value[1] if isinstance(value, (tuple, list)) else value
        if isinstance(stream, (bytes, str)):
            continue
        if not hasattr(stream, 'seek') or (hasattr(stream, 'seekable') and not stream.seekable()):
            return False
        stream.seek(0)
    return True
