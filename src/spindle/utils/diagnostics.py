from typing import List, Optional
from pydantic import BaseModel

class LoadDiagnostic(BaseModel):
    """
    Standardized error reporting object for unit loading and boot issues.
    """
    file_path: str
    error_code: str
    message: str
    severity: str = "error" # 'error', 'warning', 'critical'
    line_number: Optional[int] = None
    trace: Optional[str] = None

    def __str__(self) -> str:
        loc = f"{self.file_path}"
        if self.line_number:
            loc += f":{self.line_number}"
        return f"[{self.error_code}] {self.message} (at {loc})"

class BootError(Exception):
    """
    Fatal boot error. Raised when the boot sequence cannot continue.
    """
    def __init__(self, message: str, diagnostics: Optional[List[LoadDiagnostic]] = None):
        self.message = message
        self.diagnostics = list(diagnostics or [])
        super().__init__(message)

class UnresolvedReferencesError(BootError):
    """
    Raised when deferred files stop making progress while resolving forward references.
    """
    def __init__(self, diagnostics: List[LoadDiagnostic]):
        self.files = [diag.file_path for diag in diagnostics]
        super().__init__(f"{', '.join(self.files)} failed to load.", diagnostics)
