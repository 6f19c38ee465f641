from linkguard.models.redirect_record import RedirectRecord, RedirectStatus
from linkguard.models.request_meta import RequestMeta


__all__ = [
    'RedirectRecord',
    'RedirectStatus',
    'RequestMeta',
]
