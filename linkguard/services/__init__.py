from linkguard.services.redirect_resolver import ClickRecorder, RedirectResolver, redirect_headers
from linkguard.services.link_creator import CreatedLink, CreateLinkRequest, LinkCreator
from linkguard.services.runtime import Runtime, get_runtime, reset_runtime


__all__ = [
    'ClickRecorder',
    'RedirectResolver',
    'redirect_headers',
    'CreatedLink',
    'CreateLinkRequest',
    'LinkCreator',
    'Runtime',
    'get_runtime',
    'reset_runtime',
]
