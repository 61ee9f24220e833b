"""
测试公共夹具
内存中的 requests.Session 替身，不访问网络
"""

import re
import threading
import time

import pytest
from Crypto.Cipher import AES
from Crypto.Util.Padding import pad
from requests.structures import CaseInsensitiveDict

from app.hlsgrab.core.config import DownloadConfig
from app.hlsgrab.core.fetcher import SegmentFetcher

_RANGE_RE = re.compile(r'bytes=(\d+)-(\d+)')


class FakeResponse:
    """只实现 SegmentFetcher 用到的 Response 接口"""

    def __init__(self, status_code=200, body=b'', headers=None):
        self.status_code = status_code
        self._body = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.closed = False

    @property
    def content(self):
        return self._body

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """
    按 URL 返回预设响应的会话

    每个 URL 可以注册一个响应序列，依次消费，最后一个会一直重复；
    序列里的异常实例会被直接抛出，用来模拟传输错误。
    """

    def __init__(self):
        self._routes = {}
        self._lock = threading.Lock()
        self.requests = []
        # url -> 响应前等待的秒数，用来打乱完成顺序
        self.delays = {}

    def add(self, url, body=b'', status=200, content_type='application/octet-stream',
            headers=None, honor_range=True):
        if isinstance(body, str):
            body = body.encode('utf-8')
        response_headers = {'Content-Type': content_type} if content_type else {}
        response_headers.update(headers or {})
        self._routes[url] = [(status, body, response_headers, honor_range)]
        return self

    def add_sequence(self, url, responses):
        """responses: (status, body, content_type) 元组或异常实例"""
        items = []
        for item in responses:
            if isinstance(item, BaseException):
                items.append(item)
            else:
                status, body, content_type = item
                if isinstance(body, str):
                    body = body.encode('utf-8')
                items.append((status, body, {'Content-Type': content_type}, True))
        self._routes[url] = items
        return self

    def _respond(self, method, url, headers):
        headers = dict(headers or {})
        with self._lock:
            self.requests.append((method, url, headers))
            routes = self._routes.get(url)
            if not routes:
                return FakeResponse(404, b'not found', {'Content-Type': 'text/plain'})
            item = routes.pop(0) if len(routes) > 1 else routes[0]

        delay = self.delays.get(url)
        if delay:
            time.sleep(delay)
        if isinstance(item, BaseException):
            raise item
        status, body, response_headers, honor_range = item
        response_headers = dict(response_headers)
        match = _RANGE_RE.match(headers.get('Range', ''))
        if match and honor_range and status == 200:
            start, end = int(match.group(1)), int(match.group(2))
            body = body[start:end + 1]
            status = 206
        response_headers.setdefault('Content-Length', str(len(body)))
        return FakeResponse(status, body if method == 'GET' else b'', response_headers)

    def get(self, url, headers=None, timeout=None, stream=False):
        return self._respond('GET', url, headers)

    def head(self, url, headers=None, timeout=None, allow_redirects=True):
        return self._respond('HEAD', url, headers)

    def count(self, url, method='GET'):
        """某个 URL 被请求的次数"""
        with self._lock:
            return sum(1 for m, u, _ in self.requests if u == url and m == method)

    def headers_for(self, url):
        """某个 URL 最近一次请求的请求头"""
        with self._lock:
            for _, u, h in reversed(self.requests):
                if u == url:
                    return h
        return None


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def config():
    """测试用配置：不等待重试，不显示进度"""
    return DownloadConfig(concurrency=4, retry_delay=0, show_progress=False, enable_logging=False)


@pytest.fixture
def fetcher(fake_session, config):
    return SegmentFetcher(fake_session, config)


@pytest.fixture
def aes_encrypt():
    """AES-128-CBC 加密并加 PKCS#7 填充"""
    def _encrypt(data, key, iv):
        return AES.new(key, AES.MODE_CBC, iv).encrypt(pad(data, AES.block_size))
    return _encrypt
