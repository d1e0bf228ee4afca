from typing import Optional, Sequence


class DevWPError(Exception):
    """Base class for every failure the API reports to the UI."""

    status_code = 500


class ValidationError(DevWPError):
    status_code = 400


class AlreadyExistsError(DevWPError):
    status_code = 409


class StoreError(DevWPError):
    def __init__(self, message: str, diagnostic: str = ""):
        super().__init__(message)
        self.diagnostic = diagnostic


class ReloadError(DevWPError):
    pass


class SpawnError(DevWPError):
    def __init__(self, args: Sequence[str], reason: Exception):
        super().__init__(f"Failed to start '{args[0] if args else '?'}': {reason}")
        self.command = list(args)
        self.reason = reason


class ExitCodeError(DevWPError):
    def __init__(self, args: Sequence[str], returncode: int, stderr: str = ""):
        message = stderr.strip() or f"exited with code {returncode}"
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr


class FileSystemError(DevWPError):
    def __init__(self, message: str, path: Optional[str] = None, not_found: bool = False):
        super().__init__(message)
        self.path = path
        self.not_found = not_found

    @property
    def status_code(self):
        return 404 if self.not_found else 500


class SonarQubeError(DevWPError):
    pass
