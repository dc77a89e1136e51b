from typing import Optional

import pytest
import urllib3

from flagcore.config import Config, HTTPConfig
from flagcore.impl.http import HTTPFactory, _base_headers, _get_proxy_url, _http_factory
from flagcore.version import VERSION


@pytest.mark.parametrize(
    'target_uri, no_proxy, expected',
    [
        ('https://secure.example.com', '', 'https://secure.proxy:1234'),
        ('http://insecure.example.com', '', 'http://insecure.proxy:6789'),
        ('https://secure.example.com', 'secure.example.com', None),
        ('https://secure.example.com', 'secure.example.com:443', None),
        ('https://secure.example.com', 'secure.example.com:80', 'https://secure.proxy:1234'),
        ('https://secure.example.com:8080', 'secure.example.com:443,,', 'https://secure.proxy:1234'),
        ('https://secure.example.com:8080', ':8080', 'https://secure.proxy:1234'),
        ('https://secure.example.com', 'example.com', None),
        ('http://insecure.example.com', 'insecure.example.com:80', None),
        ('http://insecure.example.com', 'wrong.example.com', 'http://insecure.proxy:6789'),
        ('secure.example.com', 'secure.example.com:443', 'http://insecure.proxy:6789'),
        ('secure.example.com:8080', 'secure.example.com', None),
        ('https://secure.example.com', '*', None),
        ('insecure.example.com:8080', '*', None),
    ],
)
def test_honors_no_proxy(target_uri: str, no_proxy: str, expected: Optional[str], monkeypatch):
    monkeypatch.setenv('https_proxy', 'https://secure.proxy:1234')
    monkeypatch.setenv('http_proxy', 'http://insecure.proxy:6789')
    monkeypatch.setenv('no_proxy', no_proxy)

    assert _get_proxy_url(target_uri) == expected


def test_no_proxy_without_environment(monkeypatch):
    monkeypatch.delenv('https_proxy', raising=False)
    monkeypatch.delenv('http_proxy', raising=False)
    assert _get_proxy_url('https://secure.example.com') is None
    assert _get_proxy_url(None) is None


def test_base_headers():
    headers = _base_headers(Config('sdk-key'))
    assert headers == {'Authorization': 'sdk-key', 'User-Agent': 'FlagCorePython/' + VERSION}


def test_factory_uses_configured_timeouts():
    factory = _http_factory(Config('sdk-key', http=HTTPConfig(connect_timeout=2, read_timeout=3)))
    assert factory.timeout.connect_timeout == 2
    assert factory.timeout.read_timeout == 3


def test_read_timeout_can_be_overridden():
    factory = HTTPFactory({}, HTTPConfig(read_timeout=3), override_read_timeout=300)
    assert factory.timeout.read_timeout == 300


def test_configured_proxy_creates_proxy_manager(monkeypatch):
    monkeypatch.delenv('https_proxy', raising=False)
    factory = HTTPFactory({}, HTTPConfig(http_proxy='http://proxy.example.com:1234'))
    assert isinstance(factory.create_pool_manager(1, 'https://example.com'), urllib3.ProxyManager)


def test_pool_manager_without_proxy(monkeypatch):
    monkeypatch.delenv('https_proxy', raising=False)
    monkeypatch.delenv('http_proxy', raising=False)
    pool = HTTPFactory({}, HTTPConfig()).create_pool_manager(1, 'https://example.com')
    assert isinstance(pool, urllib3.PoolManager)
    assert not isinstance(pool, urllib3.ProxyManager)
