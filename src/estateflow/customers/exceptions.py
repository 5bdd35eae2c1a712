"""Customer sync errors."""

from __future__ import annotations


class CustomerNotFoundError(LookupError):
    """Raised when an operation targets a customer that does not exist."""

    def __init__(self, customer_id: str) -> None:
        super().__init__(f"Customer not found: {customer_id}")
        self.customer_id = customer_id


class MeetingNotFoundError(LookupError):
    def __init__(self, customer_id: str, meeting_id: str) -> None:
        super().__init__(f"Meeting {meeting_id} not found for customer {customer_id}")
        self.customer_id = customer_id
        self.meeting_id = meeting_id
