from typing import Any, Optional
from pydantic import BaseModel


class RefillResult(BaseModel):
    success: bool
    code: Optional[str] = None
    error: Optional[str] = None
    data: Optional[Any] = None

    @classmethod
    def ok(cls, data: Any = None) -> "RefillResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, error: str, data: Any = None) -> "RefillResult":
        return cls(success=False, code=code, error=error, data=data)
