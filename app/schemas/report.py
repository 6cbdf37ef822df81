from pydantic import BaseModel
from typing import Dict

class SummaryReport(BaseModel):
    books: Dict[str, int]
    loans: Dict[str, int]
    membersWithFines: int
    outstandingFines: float
