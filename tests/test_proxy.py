"""Tests for proxy issuers and the session manager."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from youtube_clipper import proxy
from youtube_clipper.errors import ProxyConfigurationError
from youtube_clipper.models import ProxyHealth, ProxyQuality


def health(quality: ProxyQuality, latency_ms: int = 100) -> ProxyHealth:
    return ProxyHealth(success=quality is not ProxyQuality.FAILED, latency_ms=latency_ms, quality=quality)


def make_manager(results, sleeps, max_attempts=3):
    results = list(results)
    ids = iter(f"sess{i}" for i in range(1, 100))
    issuer = proxy.TemplateProxyIssuer("http://u-{groups}-{session}:pw@proxy.example.com:8000")
    return proxy.ProxySessionManager(
        issuer,
        probe=lambda url: results.pop(0),
        max_attempts=max_attempts,
        attempt_delay=2.0,
        sleep=sleeps.append,
        session_id_factory=lambda: next(ids),
    )


def test_template_issuer_fills_session_and_groups():
    issuer = proxy.TemplateProxyIssuer("http://groups-{groups},session-{session}:pw@h:1", ["A", "B"])
    assert issuer.new_url("xyz") == "http://groups-A+B,session-xyz:pw@h:1"
    assert proxy.TemplateProxyIssuer("{groups}").new_url("x") == "RESIDENTIAL"


def test_latency_buckets():
    assert proxy.classify_latency(True, 1999) is ProxyQuality.GOOD
    assert proxy.classify_latency(True, 2000) is ProxyQuality.FAIR
    assert proxy.classify_latency(True, 4999) is ProxyQuality.FAIR
    assert proxy.classify_latency(True, 5000) is ProxyQuality.POOR
    assert proxy.classify_latency(False, 10) is ProxyQuality.FAILED


def test_first_fair_session_is_accepted():
    sleeps = []
    manager = make_manager([health(ProxyQuality.POOR), health(ProxyQuality.FAIR)], sleeps)

    session = manager.new_healthy_session()

    assert session.session_id == "sess2"
    assert session.url == "http://u-RESIDENTIAL-sess2:pw@proxy.example.com:8000"
    assert sleeps == [2.0]


def test_degraded_session_returned_when_none_healthy(capsys):
    sleeps = []
    manager = make_manager([health(ProxyQuality.FAILED)] * 3, sleeps)

    session = manager.new_healthy_session()

    assert session.session_id == "sess3"
    assert session.health.quality is ProxyQuality.FAILED
    assert sleeps == [2.0, 2.0]
    assert "No healthy proxy session" in capsys.readouterr().err


def test_rotate_replaces_current_session():
    manager = make_manager([health(ProxyQuality.GOOD), health(ProxyQuality.GOOD)], [])
    first = manager.establish()

    second = manager.rotate()

    assert manager.current is second
    assert first.session_id != second.session_id
    assert manager.rotations == 1


def test_load_proxies_skips_comments(tmp_path):
    proxy_file = tmp_path / "proxies.txt"
    proxy_file.write_text("# pool\nhttp://a:1\n\n  http://b:2  \n", encoding="utf-8")

    assert proxy.load_proxies_from_file(str(proxy_file)) == ["http://a:1", "http://b:2"]


def test_build_proxy_issuer_variants(tmp_path):
    assert proxy.build_proxy_issuer(None, None) is None

    pool_file = tmp_path / "pool.txt"
    pool_file.write_text("http://only:1\n", encoding="utf-8")
    issuer = proxy.build_proxy_issuer(None, str(pool_file))
    assert issuer.new_url("ignored") == "http://only:1"

    empty = tmp_path / "empty.txt"
    empty.write_text("# nothing\n", encoding="utf-8")
    with pytest.raises(ProxyConfigurationError):
        proxy.build_proxy_issuer(None, str(empty))

    assert isinstance(proxy.build_proxy_issuer("http://{session}@h", str(pool_file)), proxy.TemplateProxyIssuer)


def test_probe_failure_is_graded_failed(monkeypatch):
    class BrokenOpener:
        def open(self, url, timeout):
            raise OSError("tunnel connection failed")

    monkeypatch.setattr(proxy.urllib.request, "build_opener", lambda *handlers: BrokenOpener())

    result = proxy.probe_proxy("http://proxy:1")

    assert result.success is False
    assert result.quality is ProxyQuality.FAILED
