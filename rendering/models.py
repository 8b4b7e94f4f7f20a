from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class NavigationOutcome:
    """
    Result of a successful navigation.
    final_url differs from requested_url when the site redirected.
    """
    requested_url: str
    final_url: str
    status_code: Optional[int] = None
