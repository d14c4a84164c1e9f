import hashlib
import hmac
import time
import urllib.parse
from typing import Callable, Iterable, Mapping

Params = list[tuple[str, str]]

EXP_PARAM = "exp"
SIG_PARAM = "sig"
DEFAULT_LIFETIME = 300


def hmac_sha256_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def constant_time_equals(supplied, expected) -> bool:
    """
    Compare two signatures without leaking where they differ.
    Accepts str or bytes; anything that can't be compared is simply unequal.
    """
    try:
        if isinstance(supplied, str):
            supplied = supplied.encode("utf-8")
        if isinstance(expected, str):
            expected = expected.encode("utf-8")
        return hmac.compare_digest(supplied, expected)
    except (TypeError, UnicodeError):
        return False


def canonical_query(params: Iterable[tuple[str, str]]) -> str:
    """form-urlencoded, in the order given"""
    return urllib.parse.urlencode(list(params))


def canonical_string(path: str, params: Iterable[tuple[str, str]]) -> str:
    """
    The exact bytes that get signed: path + "?" + canonical_query.
    Used by both LinkSigner.sign and LinkSigner.verify.
    """
    return f"{path}?{canonical_query(params)}"


def parse_query(query: str) -> Params:
    return urllib.parse.parse_qsl(query, keep_blank_values=True)


def set_param(params: Params, key: str, value: str) -> Params:
    # replace first occurrence in place, drop the rest; append if absent
    out: Params = []
    replaced = False
    for k, v in params:
        if k != key:
            out.append((k, v))
        elif not replaced:
            out.append((k, value))
            replaced = True
    if not replaced:
        out.append((key, value))
    return out


def first_param(params: Params, key: str) -> str | None:
    for k, v in params:
        if k == key:
            return v
    return None


class LinkSigner:
    """
    Issues and checks time-limited download links.

    signed link = path?<params>&exp=<unix>&sig=<hex hmac-sha256>
    sig covers the path and every other parameter, in order.
    """

    def __init__(self, secret: str, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("signing secret must not be empty")
        self._secret = secret
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def sign(
        self,
        path: str,
        params: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        lifetime: int = DEFAULT_LIFETIME,
    ) -> str:
        if isinstance(lifetime, bool) or not isinstance(lifetime, int) or lifetime <= 0:
            raise ValueError(f"lifetime must be a positive integer, got {lifetime!r}")

        parts = urllib.parse.urlsplit(path)
        if parts.scheme or parts.netloc:
            raise ValueError("path must be server-relative")
        if not parts.path.startswith("/"):
            raise ValueError("path must start with '/'")

        query = parse_query(parts.query)
        if params:
            items = params.items() if isinstance(params, Mapping) else params
            query.extend((str(k), str(v)) for k, v in items)

        query = set_param(query, EXP_PARAM, str(self.now() + lifetime))
        sig = hmac_sha256_hex(self._secret, canonical_string(parts.path, query))
        query = set_param(query, SIG_PARAM, sig)
        return f"{parts.path}?{canonical_query(query)}"

    def verify(self, full_path: str) -> bool:
        try:
            parts = urllib.parse.urlsplit(full_path)
            params = parse_query(parts.query)
        except (TypeError, ValueError, AttributeError):
            return False

        exp = first_param(params, EXP_PARAM)
        sig = first_param(params, SIG_PARAM)
        if not exp or not sig:
            return False

        try:
            exp_ts = int(exp)
        except ValueError:
            return False
        if self.now() > exp_ts:
            return False

        unsigned = [(k, v) for k, v in params if k != SIG_PARAM]
        try:
            expected = hmac_sha256_hex(self._secret, canonical_string(parts.path, unsigned))
        except UnicodeError:
            # unencodable input, e.g. lone surrogates
            return False
        return constant_time_equals(sig, expected)
