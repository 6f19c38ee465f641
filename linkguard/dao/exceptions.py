from linkguard.exceptions import LinkGuardError


class DAOError(LinkGuardError):
    """Generic base class for DAO-related exceptions."""

    error_code = 'dao:dao_error'


class LinkNotFoundError(DAOError):
    """Raised when no redirect record exists (or may be served) for a shortcode."""

    error_code = 'dao:link_not_found_error'
    status_code = 404


class LinkAlreadyExistsError(DAOError):
    """Raised when inserting a redirect record under a shortcode that is already taken."""

    error_code = 'dao:link_already_exists_error'
    status_code = 409


class DataStoreError(DAOError):
    """Raised when the data store encounters an error.

    Examples include connection issues, timeouts, and out-of-memory failures.
    Never to be confused with a missing link: callers answer 503, not 404.
    """

    error_code = 'dao:data_store_error'
    status_code = 503
