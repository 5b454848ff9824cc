"""
Tests for share link issuance and redemption helpers.

Tests cover:
- Share round-trip and payload shape
- Token id / key / nonce freshness
- URL format
- Clipboard delivery and manual-copy fallback
- Tampered or incomplete URLs
"""
import asyncio
import logging
from urllib.parse import parse_qs, quote, urlsplit

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from credvault.conf import VaultConfig
from credvault.exceptions import (
    AuthenticationFailure,
    DecodeFailure,
    DeliveryFailure,
)
from credvault.models import Credential, SharePayload
from credvault.share import (
    ShareTokenIssuer,
    build_share_url,
    generate_token_id,
    open_share_url,
    parse_share_url,
)
from credvault.vault.crypto import (
    aead_encrypt,
    b64decode,
    b64encode,
    serialize_value,
)

T = 1_700_000_000_000


def run(coro):
    return asyncio.run(coro)


class FakeClipboard:
    """Clipboard that records writes, or fails on demand."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.texts = []

    async def write_text(self, text: str) -> None:
        if self.fail:
            raise PermissionError("Document is not focused")
        self.texts.append(text)


class FakePresenter:
    """Manual-copy prompt that records what it showed."""

    def __init__(self):
        self.shown = []

    def __call__(self, message: str, url: str) -> None:
        self.shown.append((message, url))


@pytest.fixture
def config():
    return VaultConfig(share_origin="chrome-extension://abcdef")


@pytest.fixture
def entry():
    return Credential(
        loginUrl="https://example.com/login", username="alice", password="p@ss",
    )


@pytest.fixture
def issuer(config):
    return ShareTokenIssuer(config, clock=lambda: T)


# --- Issuance ---

class TestIssue:
    """Tests for ShareTokenIssuer.issue()."""

    def test_share_scenario(self, issuer, entry):
        """Test the decrypted payload matches the entry at time T."""
        url = run(issuer.issue(entry, 60))
        payload = open_share_url(url)
        assert payload.to_wire() == {
            "loginUrl": "https://example.com/login",
            "username": "alice",
            "password": "p@ss",
            "created": T,
            "expires": T + 60000,
        }

    def test_expiry_window(self, config, entry):
        """Test expires - created == ttl * 1000 with the real clock."""
        payload = open_share_url(run(ShareTokenIssuer(config).issue(entry, 300)))
        assert payload.expires - payload.created == 300_000

    def test_default_ttl(self, entry):
        """Test the configured TTL is used when none is given."""
        issuer = ShareTokenIssuer(VaultConfig(share_ttl=120), clock=lambda: T)
        payload = open_share_url(run(issuer.issue(entry)))
        assert payload.expires == T + 120_000

    def test_missing_login_url(self, issuer):
        """Test an entry without loginUrl shares an empty string."""
        url = run(issuer.issue(Credential(username="bob", password="pw"), 60))
        assert open_share_url(url).login_url == ""

    def test_mapping_entry(self, issuer):
        """Test a plain mapping in wire form is accepted."""
        url = run(issuer.issue(
            {"loginUrl": "https://x.example", "username": "u", "password": "p"},
            60,
        ))
        assert open_share_url(url).login_url == "https://x.example"

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_invalid_ttl(self, issuer, entry, ttl):
        """Test a non-positive TTL is rejected."""
        with pytest.raises(ValueError):
            run(issuer.issue(entry, ttl))

    def test_password_not_in_url(self, issuer, entry):
        """Test the credential does not appear in the clear."""
        url = run(issuer.issue(entry, 60))
        assert "p@ss" not in url
        assert "alice" not in url


# --- Freshness ---

class TestFreshness:
    """Tests that every link is independent."""

    def test_token_id_format(self):
        """Test token ids are 16 hex characters."""
        token_id = generate_token_id()
        assert len(token_id) == 16
        int(token_id, 16)

    def test_tokens_unique(self, issuer, entry):
        """Test token ids, keys and nonces never repeat."""
        tokens = [issuer.mint(entry, 60) for _ in range(200)]
        assert len({t.token_id for t in tokens}) == 200
        assert len({t.key for t in tokens}) == 200
        assert len({t.iv for t in tokens}) == 200

    def test_issuer_keeps_no_state(self, issuer, entry):
        """Test issuing does not touch anything but the return value."""
        before = dict(vars(issuer))
        run(issuer.issue(entry, 60))
        assert vars(issuer) == before


# --- URL format ---

class TestUrlFormat:
    """Tests for the capability URL layout."""

    def test_base_and_params(self, issuer, entry):
        """Test the URL targets share.html with the four parameters."""
        url = run(issuer.issue(entry, 60))
        parts = urlsplit(url)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
            "chrome-extension://abcdef/share.html"
        )
        params = parse_qs(parts.query)
        assert set(params) == {"token", "data", "iv", "key"}
        assert len(b64decode(params["iv"][0])) == 12
        assert len(b64decode(params["key"][0])) == 32

    def test_param_order_irrelevant(self, issuer, entry):
        """Test parameters may come in any order."""
        url = run(issuer.issue(entry, 60))
        base, query = url.split("?", 1)
        reordered = f"{base}?{'&'.join(reversed(query.split('&')))}"
        assert open_share_url(reordered) == open_share_url(url)

    def test_parse_roundtrip(self, issuer, entry, config):
        """Test parse_share_url recovers the minted token."""
        token = issuer.mint(entry, 60)
        url = build_share_url(token, config.share_base_url)
        assert parse_share_url(url) == token

    def test_base64_is_percent_encoded(self, issuer, entry):
        """Test '+', '/' and '=' never appear raw in the query."""
        for _ in range(20):
            query = urlsplit(run(issuer.issue(entry, 60))).query
            for value in (p.split("=", 1)[1] for p in query.split("&")):
                assert not set(value) & {"+", "/", "="}


# --- Delivery ---

class TestDelivery:
    """Tests for clipboard delivery and its fallback."""

    def test_clipboard(self, config, entry):
        """Test the URL is written to the clipboard."""
        clipboard = FakeClipboard()
        presenter = FakePresenter()
        issuer = ShareTokenIssuer(config, clipboard=clipboard, presenter=presenter)
        url = run(issuer.issue(entry, 60))
        assert clipboard.texts == [url]
        assert presenter.shown == []

    def test_fallback_to_presenter(self, config, entry, caplog):
        """Test a clipboard failure falls back to manual copy."""
        presenter = FakePresenter()
        issuer = ShareTokenIssuer(
            config, clipboard=FakeClipboard(fail=True), presenter=presenter,
        )
        with caplog.at_level(logging.WARNING, logger="credvault.share"):
            url = run(issuer.issue(entry, 60))
        assert [shown_url for _, shown_url in presenter.shown] == [url]
        assert "Clipboard write failed" in caplog.text

    def test_async_presenter(self, config, entry):
        """Test coroutine presenters are awaited."""
        shown = []

        async def presenter(message, url):
            shown.append(url)

        issuer = ShareTokenIssuer(config, presenter=presenter)
        url = run(issuer.issue(entry, 60))
        assert shown == [url]

    def test_no_fallback(self, config, entry):
        """Test a failed clipboard with no fallback raises DeliveryFailure."""
        issuer = ShareTokenIssuer(config, clipboard=FakeClipboard(fail=True))
        with pytest.raises(DeliveryFailure):
            run(issuer.issue(entry, 60))

    def test_presenter_failure(self, config, entry):
        """Test DeliveryFailure when both delivery paths fail."""

        def presenter(message, url):
            raise RuntimeError("no window")

        issuer = ShareTokenIssuer(
            config, clipboard=FakeClipboard(fail=True), presenter=presenter,
        )
        with pytest.raises(DeliveryFailure):
            run(issuer.issue(entry, 60))

    def test_return_value_only(self, config, entry):
        """Test with no delivery collaborators the URL is just returned."""
        url = run(ShareTokenIssuer(config).issue(entry, 60))
        assert url.startswith("chrome-extension://abcdef/share.html?token=")


# --- Redemption helpers ---

class TestOpenShareUrl:
    """Tests for decrypting and validating share URLs."""

    def _replace(self, url: str, name: str, value: str) -> str:
        base, query = url.split("?", 1)
        parts = [
            f"{name}={value}" if p.startswith(f"{name}=") else p
            for p in query.split("&")
        ]
        return f"{base}?{'&'.join(parts)}"

    def test_tampered_data(self, issuer, entry):
        """Test a modified ciphertext fails authentication."""
        token = issuer.mint(entry, 60)
        cipher = bytearray(token.cipher)
        cipher[0] ^= 1
        url = self._replace(
            build_share_url(token, "https://x/share.html"),
            "data", b64encode(bytes(cipher)).replace("+", "%2B").replace("/", "%2F"),
        )
        with pytest.raises(AuthenticationFailure):
            open_share_url(url)

    def test_wrong_key(self, issuer, entry):
        """Test a link carrying another key fails authentication."""
        url = run(issuer.issue(entry, 60))
        other = run(issuer.issue(entry, 60))
        other_key = parse_qs(urlsplit(other).query)["key"][0]
        with pytest.raises(AuthenticationFailure):
            open_share_url(self._replace(url, "key", other_key.replace("+", "%2B")))

    @pytest.mark.parametrize("name", ["token", "data", "iv", "key"])
    def test_missing_param(self, issuer, entry, name):
        """Test every parameter is required."""
        url = run(issuer.issue(entry, 60))
        base, query = url.split("?", 1)
        kept = [p for p in query.split("&") if not p.startswith(f"{name}=")]
        with pytest.raises(DecodeFailure):
            open_share_url(f"{base}?{'&'.join(kept)}")

    def test_bad_token_id(self, issuer, entry):
        """Test a malformed token id is rejected."""
        url = self._replace(run(issuer.issue(entry, 60)), "token", "nothex")
        with pytest.raises(DecodeFailure):
            open_share_url(url)

    def test_expiry_not_enforced(self, issuer, entry):
        """Test an expired link still opens; expiry is advisory."""
        payload = open_share_url(run(issuer.issue(entry, 1)))
        assert payload.is_expired(T + 1000) is True

    def test_unescaped_plus_in_key(self):
        """Test a key whose base64 starts with '+' survives a raw query."""
        key = b"\xf8" + bytes(range(1, 32))
        payload = SharePayload(
            login_url="https://example.com/login", username="alice",
            password="p@ss", created=T, expires=T + 60000,
        )
        ct, iv = aead_encrypt(
            serialize_value(payload), key, cipher_cls=AESGCM,
        )
        raw_key = b64encode(key)
        assert raw_key.startswith("+")
        url = (
            "chrome-extension://abcdef/share.html?token=0123456789abcdef"
            f"&data={quote(b64encode(ct), safe='')}"
            f"&iv={quote(b64encode(iv), safe='')}"
            f"&key={raw_key}"
        )
        assert open_share_url(url) == payload


class TestShareTokenUrl:
    """Tests for ShareToken.url()."""

    def test_url_matches_builder(self, issuer, entry, config):
        """Test the model and the free function compose the same URL."""
        token = issuer.mint(entry, 60)
        url = token.url(config.share_base_url)
        assert url == build_share_url(token, config.share_base_url)
        assert url.startswith(
            f"chrome-extension://abcdef/share.html?token={token.token_id}&data="
        )
        assert parse_share_url(url) == token
