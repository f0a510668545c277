class TableViewError(Exception):
    def __init__(self, message: str, error_code: str = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class RegistryConfigurationError(TableViewError):
    """A registry was built from invalid configuration"""

    def __init__(self, message: str):
        super().__init__(message, error_code="registry_configuration")


class LookupFetchError(TableViewError):
    """A lookup endpoint answered with an error or an unreadable body"""

    def __init__(self, message: str, status: int = None):
        self.status = status
        super().__init__(message, error_code="lookup_fetch")
