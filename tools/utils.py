"""Shared HTTP settings for outbound requests.

Both the GNews client and the article text extractor use these, so news
sites and the provider see one consistent client.
"""

import ssl

import certifi

# Browser-like User-Agent; some publishers block default library agents
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Build an SSL context for aiohttp requests.

    Args:
        verify: Verify certificates against the certifi bundle. Pass False
                only to retry a publisher page whose certificate is broken.
    """
    if not verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx
    return ssl.create_default_context(cafile=certifi.where())
