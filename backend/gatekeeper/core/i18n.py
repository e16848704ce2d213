"""Message catalogs and per-request locale negotiation.

The locale is never stored globally: it is negotiated per request, kept on
``request.state.locale`` and passed explicitly to ``translate``.
"""

import logging

from starlette.requests import HTTPConnection

from gatekeeper.core.config import settings

logger = logging.getLogger(__name__)

LOCALE_HEADER = "x-locale"
LOCALE_QUERY_PARAM = "lang"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "auth.token.noToken": "Authentication required. No token provided.",
        "auth.token.invalidToken": "Invalid or expired token.",
        "auth.login.invalidCredentials": "Invalid email or password.",
        "auth.logout.success": "Logged out successfully.",
        "auth.logout.allSuccess": "Logged out from all devices.",
        "auth.device.revoked": "Device signed out.",
        "auth.device.notFound": "Device not found.",
        "auth.register.duplicate": "An account with this email already exists.",
        "auth.authorization.forbidden": "You do not have permission to {action} {section}.",
        "role.notFound": "Role not found.",
        "rateLimit.exceeded": "Too many requests. Please try again in {retry_after} seconds.",
        "rateLimit.loginExceeded": (
            "Too many login attempts. Please try again in {retry_after} seconds."
        ),
        "common.serviceUnavailable": "Service temporarily unavailable. Please try again.",
    },
    "hi": {
        "auth.token.noToken": "प्रमाणीकरण आवश्यक है। कोई टोकन नहीं दिया गया।",
        "auth.token.invalidToken": "अमान्य या समाप्त टोकन।",
        "auth.login.invalidCredentials": "अमान्य ईमेल या पासवर्ड।",
        "auth.logout.success": "सफलतापूर्वक लॉग आउट किया गया।",
        "auth.logout.allSuccess": "सभी डिवाइस से लॉग आउट किया गया।",
        "auth.device.revoked": "डिवाइस से साइन आउट किया गया।",
        "auth.device.notFound": "डिवाइस नहीं मिला।",
        "auth.register.duplicate": "इस ईमेल से एक खाता पहले से मौजूद है।",
        "auth.authorization.forbidden": "आपको {section} पर {action} करने की अनुमति नहीं है।",
        "role.notFound": "भूमिका नहीं मिली।",
        "rateLimit.exceeded": "बहुत अधिक अनुरोध। कृपया {retry_after} सेकंड बाद पुनः प्रयास करें।",
        "rateLimit.loginExceeded": (
            "बहुत अधिक लॉगिन प्रयास। कृपया {retry_after} सेकंड बाद पुनः प्रयास करें।"
        ),
        "common.serviceUnavailable": "सेवा अस्थायी रूप से अनुपलब्ध है। कृपया पुनः प्रयास करें।",
    },
}

SUPPORTED_LOCALES = frozenset(MESSAGES)


def normalize_locale(value: str | None) -> str | None:
    """Reduce a language tag (``hi-IN``, ``EN_us``) to a supported locale, or None."""
    if not value:
        return None
    primary = value.strip().replace("_", "-").split("-")[0].lower()
    return primary if primary in SUPPORTED_LOCALES else None


def default_locale() -> str:
    return normalize_locale(settings.default_locale) or "en"


def _parse_accept_language(header: str) -> list[str]:
    """Return language tags from an Accept-Language header, best first."""
    weighted: list[tuple[float, int, str]] = []
    for index, part in enumerate(header.split(",")):
        pieces = part.strip().split(";")
        tag = pieces[0].strip()
        if not tag or tag == "*":
            continue
        quality = 1.0
        for param in pieces[1:]:
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if quality > 0:
            weighted.append((-quality, index, tag))
    return [tag for _, _, tag in sorted(weighted)]


def negotiate_locale(conn: HTTPConnection) -> str:
    """Pick the request locale.

    Priority: ``?lang=`` query parameter, ``x-locale`` header,
    ``Accept-Language`` header, then the configured default.
    """
    for candidate in (
        conn.query_params.get(LOCALE_QUERY_PARAM),
        conn.headers.get(LOCALE_HEADER),
    ):
        locale = normalize_locale(candidate)
        if locale:
            return locale

    accept_language = conn.headers.get("accept-language")
    if accept_language:
        for tag in _parse_accept_language(accept_language):
            locale = normalize_locale(tag)
            if locale:
                return locale

    return default_locale()


def request_locale(conn: HTTPConnection) -> str:
    """Locale already negotiated for this request, negotiating if needed."""
    locale = getattr(conn.state, "locale", None)
    if locale is None:
        locale = negotiate_locale(conn)
        conn.state.locale = locale
    return locale


def translate(key: str, locale: str, **params: object) -> str:
    """Look up ``key`` in the catalog for ``locale``.

    Falls back to English, then to the key itself.
    """
    template = MESSAGES.get(locale, {}).get(key) or MESSAGES["en"].get(key)
    if template is None:
        logger.debug(f"Missing translation for key {key!r}")
        return key
    if params:
        try:
            return template.format(**params)
        except (KeyError, IndexError):
            return template
    return template
