"""Error taxonomy for Saphira.

采集/存储/解析各环节的异常类型。
Failures inside one source or one file are caught at their boundary;
these types let callers tell them apart.
"""


class SaphiraError(Exception):
    """Base class for all Saphira errors."""


class AdapterError(SaphiraError):
    """Network or parse failure inside one collector.

    单个数据源失败，不影响整个采集流程。
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class MissingCredentialError(AdapterError):
    """A collector that needs an API key was built without one."""


class PersistenceError(SaphiraError):
    """Reading or writing the knowledge store failed."""


class ParseError(SaphiraError):
    """Malformed search results page or stored JSON file."""
